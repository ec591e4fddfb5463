"""Error kinds raised by room operations.

Every error carries a message that is safe to send back to the client
that caused it.
"""


class ScrumPokerError(Exception):
    default_message = 'Something went wrong'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidSession(ScrumPokerError):
    """The connection is not bound to the room named in the event."""
    default_message = 'Not joined to this room'


class RoomNotFound(ScrumPokerError):
    default_message = 'Room not found'


class ValidationError(ScrumPokerError):
    default_message = 'Invalid request'


class PersistenceError(ScrumPokerError):
    """Team defaults could not be read or written."""
    default_message = 'Team defaults unavailable'
