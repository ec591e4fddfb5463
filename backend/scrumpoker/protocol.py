"""Socket event protocol.

Inbound events are parsed into one dataclass per event kind. Outbound
events are ``Notice`` values that carry their delivery scope, so the
dispatcher never decides per call site who receives what.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scrumpoker.errors import ValidationError
from scrumpoker.models import ROLES, normalize_room_code

# Delivery scopes
SENDER = 'sender'
ROOM = 'room'
OTHERS = 'others'


def _payload(data) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Event payload must be an object')
    return data


@dataclass(frozen=True)
class JoinRoom:
    room_id: str
    user_name: str
    user_role: str = 'voter'
    team_key: Optional[str] = None

    @classmethod
    def from_payload(cls, data):
        data = _payload(data)
        room_id = normalize_room_code(data.get('roomId'))
        user_name = str(data.get('userName') or '').strip()
        if not room_id or not user_name:
            raise ValidationError('Room ID and username are required')
        user_role = data.get('userRole') or 'voter'
        if user_role not in ROLES:
            raise ValidationError(f'Unknown role: {user_role}')
        return cls(room_id, user_name, user_role, data.get('teamKey') or None)


@dataclass(frozen=True)
class LeaveRoom:
    room_id: str

    @classmethod
    def from_payload(cls, data):
        return cls(normalize_room_code(_payload(data).get('roomId')))


@dataclass(frozen=True)
class CastVote:
    room_id: str
    card: Any
    confidence: Optional[str] = None

    @classmethod
    def from_payload(cls, data):
        data = _payload(data)
        return cls(normalize_room_code(data.get('roomId')), data.get('card'), data.get('confidence'))


@dataclass(frozen=True)
class ToggleRevealCards:
    room_id: str

    @classmethod
    def from_payload(cls, data):
        return cls(normalize_room_code(_payload(data).get('roomId')))


@dataclass(frozen=True)
class ClearVotes:
    room_id: str

    @classmethod
    def from_payload(cls, data):
        return cls(normalize_room_code(_payload(data).get('roomId')))


@dataclass(frozen=True)
class UpdateStory:
    room_id: str
    updates: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data):
        data = _payload(data)
        updates = data.get('updates')
        if updates is None:
            updates = {}
        if not isinstance(updates, dict):
            raise ValidationError('Story updates must be an object')
        return cls(normalize_room_code(data.get('roomId')), updates)


@dataclass(frozen=True)
class ChangeEstimationType:
    room_id: str
    estimation_type: Any

    @classmethod
    def from_payload(cls, data):
        data = _payload(data)
        return cls(normalize_room_code(data.get('roomId')), data.get('estimationType'))


@dataclass(frozen=True)
class ChangeCardSet:
    room_id: str
    card_set: Any
    custom_cards: Optional[List[Any]] = None

    @classmethod
    def from_payload(cls, data):
        data = _payload(data)
        return cls(normalize_room_code(data.get('roomId')), data.get('cardSet'), data.get('customCards'))


@dataclass(frozen=True)
class ToggleTimer:
    room_id: str
    duration: Optional[int] = None

    @classmethod
    def from_payload(cls, data):
        data = _payload(data)
        duration = data.get('duration')
        if duration is not None:
            if isinstance(duration, bool):
                raise ValidationError('Timer duration must be a number of seconds')
            try:
                duration = int(duration)
            except (TypeError, ValueError):
                raise ValidationError('Timer duration must be a number of seconds')
            if duration <= 0:
                raise ValidationError('Timer duration must be positive')
        return cls(normalize_room_code(data.get('roomId')), duration)


@dataclass(frozen=True)
class CompleteStory:
    room_id: str
    estimate: Optional[str] = None
    consensus: Optional[bool] = None

    @classmethod
    def from_payload(cls, data):
        data = _payload(data)
        estimate = data.get('estimate')
        consensus = data.get('consensus')
        return cls(
            normalize_room_code(data.get('roomId')),
            None if estimate is None else str(estimate),
            None if consensus is None else bool(consensus),
        )


INBOUND_EVENTS = {
    'join-room': JoinRoom,
    'leave-room': LeaveRoom,
    'cast-vote': CastVote,
    'toggle-reveal-cards': ToggleRevealCards,
    'clear-votes': ClearVotes,
    'update-story': UpdateStory,
    'change-estimation-type': ChangeEstimationType,
    'change-card-set': ChangeCardSet,
    'toggle-timer': ToggleTimer,
    'complete-story': CompleteStory,
}


def parse_inbound(event: str, data):
    message_type = INBOUND_EVENTS.get(event)
    if message_type is None:
        raise ValidationError(f'Unknown event: {event}')
    return message_type.from_payload(data)


@dataclass(frozen=True)
class Notice:
    event: str
    payload: Dict[str, Any]
    scope: str = ROOM
    # Room channel for ROOM/OTHERS notices
    room: Optional[str] = None


# ---- outbound notices ----

def room_joined(room):
    return Notice('room-joined', {'room': room.to_dict()}, SENDER)


def room_left(room_code):
    return Notice('room-left', {'roomId': room_code}, SENDER)


def participant_joined(room_code, participant):
    return Notice('participant-joined', {'participant': participant.to_dict()}, OTHERS, room_code)


def participant_rebound(room_code, participant, previous_id):
    payload = {'participant': participant.to_dict(), 'previousId': previous_id}
    return Notice('participant-rebound', payload, OTHERS, room_code)


def participant_left(room_code, participant):
    payload = {'participantId': participant.id, 'participantName': participant.name}
    return Notice('participant-left', payload, OTHERS, room_code)


def vote_cast(room_code, participant_id, vote):
    payload = {
        'participantId': participant_id,
        'card': vote.card,
        'confidence': vote.confidence,
        'timestamp': vote.timestamp,
    }
    return Notice('vote-cast', payload, ROOM, room_code)


def cards_revealed(room_code, revealed, by, summary=None):
    payload = {'revealed': revealed, 'by': by}
    if summary is not None:
        payload['summary'] = summary.to_dict()
    return Notice('cards-revealed', payload, ROOM, room_code)


def votes_cleared(room_code, by):
    return Notice('votes-cleared', {'by': by}, ROOM, room_code)


def story_updated(room_code, story, by):
    return Notice('story-updated', {'story': story.to_dict(), 'by': by}, OTHERS, room_code)


def estimation_type_changed(room_code, estimation_type, by):
    return Notice('estimation-type-changed', {'estimationType': estimation_type, 'by': by}, ROOM, room_code)


def card_set_changed(room, by):
    payload = {'cardSet': room.card_set, 'customCards': list(room.custom_cards), 'by': by}
    return Notice('card-set-changed', payload, ROOM, room.id)


def timer_updated(room_code, timer, by=None):
    payload = {'timer': timer.to_dict()}
    if by is not None:
        payload['by'] = by
    return Notice('timer-updated', payload, ROOM, room_code)


def timer_finished(room_code):
    return Notice('timer-finished', {}, ROOM, room_code)


def story_completed(room_code, story, stats, by):
    payload = {'story': story.to_dict(), 'stats': stats.to_dict(), 'by': by}
    return Notice('story-completed', payload, ROOM, room_code)


def error(message):
    return Notice('error', {'message': message}, SENDER)
