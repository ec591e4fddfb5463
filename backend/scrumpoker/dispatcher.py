import logging
from typing import List, Optional

from scrumpoker import protocol
from scrumpoker.errors import InvalidSession, RoomNotFound, ScrumPokerError
from scrumpoker.protocol import (
    INBOUND_EVENTS,
    CastVote,
    ChangeCardSet,
    ChangeEstimationType,
    ClearVotes,
    CompleteStory,
    JoinRoom,
    LeaveRoom,
    Notice,
    ToggleRevealCards,
    ToggleTimer,
    UpdateStory,
)
from scrumpoker.services.estimation import summarize_votes

# Generic failure text per event when something unexpected breaks
_FAILURE_MESSAGES = {
    'join-room': 'Failed to join room',
    'leave-room': 'Failed to leave room',
    'cast-vote': 'Failed to cast vote',
    'toggle-reveal-cards': 'Failed to reveal cards',
    'clear-votes': 'Failed to clear votes',
    'update-story': 'Failed to update story',
    'change-estimation-type': 'Failed to change estimation type',
    'change-card-set': 'Failed to change card set',
    'toggle-timer': 'Failed to toggle timer',
    'complete-story': 'Failed to complete story',
}


class RoomEventDispatcher:
    """Applies inbound socket events to room state and delivers the results.

    Every event runs under the room store lock: validate the connection's
    session, mutate the room, deliver the resulting notices. Errors only
    ever go back to the connection that sent the event.
    """

    def __init__(self, store, sessions, timers, broadcaster, logger: Optional[logging.Logger] = None):
        self.store = store
        self.sessions = sessions
        self.timers = timers
        self.broadcaster = broadcaster
        self.logger = logger or logging.getLogger(__name__)
        self._handlers = {
            JoinRoom: self._join,
            LeaveRoom: self._leave_room,
            CastVote: self._cast_vote,
            ToggleRevealCards: self._toggle_reveal,
            ClearVotes: self._clear_votes,
            UpdateStory: self._update_story,
            ChangeEstimationType: self._change_estimation_type,
            ChangeCardSet: self._change_card_set,
            ToggleTimer: self._toggle_timer,
            CompleteStory: self._complete_story,
        }
        missing = [name for name, kind in INBOUND_EVENTS.items() if kind not in self._handlers]
        if missing:
            raise RuntimeError(f"No dispatcher handler for events: {', '.join(missing)}")

    def handle(self, sid: str, event: str, data=None) -> List[Notice]:
        try:
            message = protocol.parse_inbound(event, data)
            with self.store.lock:
                notices = self._handlers[type(message)](sid, message)
                self.broadcaster.deliver(notices, sid=sid)
            return notices
        except ScrumPokerError as exc:
            self.logger.info(f"[event-rejected] event={event} sid={sid} error={type(exc).__name__}: {exc.message}")
            notices = [protocol.error(exc.message)]
        except Exception:
            self.logger.exception(f"[event-failed] event={event} sid={sid}")
            notices = [protocol.error(_FAILURE_MESSAGES.get(event, 'Something went wrong'))]
        self.broadcaster.deliver(notices, sid=sid)
        return notices

    def disconnect(self, sid: str) -> List[Notice]:
        """Reconcile room state when a connection goes away."""
        with self.store.lock:
            session = self.sessions.unbind(sid)
            if session is None:
                return []
            notices = self._depart(sid, session)
            self.broadcaster.deliver(notices, sid=sid)
        self.logger.info(f"[disconnect] room={session.room_code} name={session.user_name} sid={sid}")
        return notices

    # ---- helpers ----

    def _session_for(self, sid, room_code):
        session = self.sessions.get(sid)
        if session is None or session.room_code != room_code:
            raise InvalidSession()
        return session

    def _depart(self, sid, session) -> List[Notice]:
        self.broadcaster.exit(sid, session.room_code)
        try:
            participant, timer_cancelled = self.store.leave(session.room_code, sid)
        except RoomNotFound:
            return []
        if timer_cancelled:
            self.logger.info(f"[timer-cancel] room={session.room_code} reason=empty")
        if participant is None:
            return []
        return [protocol.participant_left(session.room_code, participant)]

    # ---- lifecycle ----

    def _join(self, sid, message: JoinRoom) -> List[Notice]:
        notices = []
        previous = self.sessions.get(sid)
        if previous is not None and (previous.room_code, previous.user_name) != (message.room_id, message.user_name):
            notices.extend(self._depart(sid, previous))

        outcome = self.store.join(message.room_id, message.user_name, message.user_role, sid, message.team_key)
        room = outcome.room
        self.broadcaster.enter(sid, room.id)
        self.sessions.bind(sid, room.id, message.user_name, message.user_role)

        notices.append(protocol.room_joined(room))
        same_connection = outcome.rebound and outcome.previous_id == sid
        if same_connection and previous is not None and previous.user_role == message.user_role:
            self.logger.info(f"[rejoin] room={room.id} name={message.user_name} sid={sid} same connection")
        elif same_connection:
            notices.append(protocol.participant_rebound(room.id, outcome.participant, sid))
            self.logger.info(f"[rejoin] room={room.id} name={message.user_name} role={message.user_role} sid={sid}")
        elif outcome.rebound:
            # The superseded connection no longer speaks for this participant
            self.sessions.unbind(outcome.previous_id)
            self.broadcaster.exit(outcome.previous_id, room.id)
            notices.append(protocol.participant_rebound(room.id, outcome.participant, outcome.previous_id))
            self.logger.info(f"[rejoin] room={room.id} name={message.user_name} role={message.user_role} sid={sid}")
        else:
            notices.append(protocol.participant_joined(room.id, outcome.participant))
            self.logger.info(f"[join] room={room.id} name={message.user_name} role={message.user_role} sid={sid}")
        return notices

    def _leave_room(self, sid, message: LeaveRoom) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        self.sessions.unbind(sid)
        notices = self._depart(sid, session)
        notices.append(protocol.room_left(session.room_code))
        self.logger.info(f"[leave] room={session.room_code} name={session.user_name} sid={sid}")
        return notices

    # ---- voting ----

    def _cast_vote(self, sid, message: CastVote) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        vote = self.store.cast_vote(session.room_code, sid, message.card, message.confidence)
        return [protocol.vote_cast(session.room_code, sid, vote)]

    def _toggle_reveal(self, sid, message: ToggleRevealCards) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        room = self.store.toggle_reveal(session.room_code)
        summary = None
        if room.cards_revealed:
            summary = summarize_votes(v.card for v in room.votes.values())
        return [protocol.cards_revealed(room.id, room.cards_revealed, session.user_name, summary)]

    def _clear_votes(self, sid, message: ClearVotes) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        self.store.clear_votes(session.room_code)
        return [protocol.votes_cleared(session.room_code, session.user_name)]

    # ---- story & configuration ----

    def _update_story(self, sid, message: UpdateStory) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        story = self.store.update_story(session.room_code, message.updates)
        return [protocol.story_updated(session.room_code, story, session.user_name)]

    def _change_estimation_type(self, sid, message: ChangeEstimationType) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        room = self.store.change_estimation_type(session.room_code, message.estimation_type)
        return [protocol.estimation_type_changed(room.id, room.current_story.estimation_type, session.user_name)]

    def _change_card_set(self, sid, message: ChangeCardSet) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        room = self.store.change_card_set(session.room_code, message.card_set, message.custom_cards)
        return [protocol.card_set_changed(room, session.user_name)]

    def _toggle_timer(self, sid, message: ToggleTimer) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        return self.timers.toggle(session.room_code, message.duration, by=session.user_name)

    def _complete_story(self, sid, message: CompleteStory) -> List[Notice]:
        session = self._session_for(sid, message.room_id)
        outcome = self.store.complete_story(session.room_code, message.estimate, message.consensus)
        notices = [protocol.story_completed(session.room_code, outcome.story, outcome.stats, session.user_name)]
        if outcome.timer_cancelled:
            room = self.store.get(session.room_code)
            notices.append(protocol.timer_updated(room.id, room.timer, session.user_name))
        self.logger.info(
            f"[story-complete] room={session.room_code} estimate={outcome.story.estimate} "
            f"consensus={outcome.story.consensus} rounds={outcome.story.rounds}"
        )
        return notices
