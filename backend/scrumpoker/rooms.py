"""Authoritative in-memory room state.

All mutations of every room go through ``RoomStore`` and run under its
single re-entrant lock, so one operation always completes before the
next one starts. Timer ticks and the eviction sweep take the same lock.
"""
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from scrumpoker.errors import RoomNotFound, ValidationError
from scrumpoker.models import (
    CONFIDENCE_LEVELS,
    ESTIMATION_TYPES,
    CompletedStory,
    Participant,
    Room,
    Stats,
    Story,
    Vote,
    normalize_room_code,
    now_ms,
)
from scrumpoker.services import catalog
from scrumpoker.services.estimation import suggest_estimate


@dataclass(frozen=True)
class JoinOutcome:
    room: Room
    participant: Participant
    rebound: bool
    # Connection id the participant was bound to before a rebind
    previous_id: Optional[str] = None


@dataclass(frozen=True)
class CompletionOutcome:
    story: CompletedStory
    stats: Stats
    timer_cancelled: bool


@dataclass(frozen=True)
class TickOutcome:
    remaining: int
    finished: bool


class RoomStore:
    def __init__(
        self,
        defaults_lookup: Optional[Callable[[str], Optional[dict]]] = None,
        default_timer_duration: int = 300,
        observers_can_vote: bool = True,
        strict_estimation_types: bool = False,
    ):
        self._rooms: Dict[str, Room] = {}
        self.lock = threading.RLock()
        self._defaults_lookup = defaults_lookup
        self.default_timer_duration = default_timer_duration
        self.observers_can_vote = observers_can_vote
        self.strict_estimation_types = strict_estimation_types

    # ---- lookup & lifecycle ----

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, code):
        return normalize_room_code(code) in self._rooms

    def get(self, code: str) -> Room:
        room = self._rooms.get(normalize_room_code(code))
        if room is None:
            raise RoomNotFound()
        return room

    def get_or_create(self, code: str, team_key: Optional[str] = None) -> Room:
        code = normalize_room_code(code)
        if not code:
            raise ValidationError('Room ID is required')
        with self.lock:
            room = self._rooms.get(code)
            if room is not None:
                room.touch()
                return room
            room = self._build_room(code, team_key)
            self._rooms[code] = room
            return room

    def _build_room(self, code: str, team_key: Optional[str]) -> Room:
        defaults = {}
        if team_key and self._defaults_lookup:
            defaults = self._defaults_lookup(team_key) or {}
        room = Room(
            id=code,
            name=defaults.get('name') or f'Room {code[-6:]}',
            card_set=defaults.get('cardSet') or catalog.DEFAULT_CARD_SET,
            custom_cards=list(defaults.get('customCards') or []),
            card_help=dict(defaults.get('cardHelp') or {}),
            templates=catalog.templates(defaults.get('templates')),
        )
        room.timer.duration = self.default_timer_duration
        return room

    def remove(self, code: str) -> Optional[Room]:
        with self.lock:
            room = self._rooms.pop(normalize_room_code(code), None)
            if room is not None:
                room.timer.cancel()
            return room

    def sweep(self, max_idle_sec: float, now: Optional[int] = None) -> List[str]:
        """Evict rooms that have no participants and have been idle too long."""
        now = now_ms() if now is None else now
        cutoff = max_idle_sec * 1000
        removed = []
        with self.lock:
            for code, room in list(self._rooms.items()):
                if not room.participants and (now - room.last_activity) > cutoff:
                    room.timer.cancel()
                    del self._rooms[code]
                    removed.append(code)
        return removed

    # ---- membership ----

    def join(self, code: str, name: str, role: str, connection_id: str,
             team_key: Optional[str] = None) -> JoinOutcome:
        with self.lock:
            room = self.get_or_create(code, team_key)
            existing = room.find_by_name(name)
            if existing is None or existing.id != connection_id:
                # A vote left under this connection belongs to whoever it spoke for before
                room.votes.pop(connection_id, None)
            if existing is not None:
                previous_id = existing.id
                if previous_id != connection_id:
                    vote = room.votes.pop(previous_id, None)
                    if vote is not None:
                        room.votes[connection_id] = vote
                existing.id = connection_id
                existing.role = role
                existing.last_seen = now_ms()
                return JoinOutcome(room, existing, rebound=True, previous_id=previous_id)
            participant = Participant(id=connection_id, name=name, role=role)
            room.participants.append(participant)
            return JoinOutcome(room, participant, rebound=False)

    def leave(self, code: str, connection_id: str) -> Tuple[Optional[Participant], bool]:
        """Remove the participant bound to ``connection_id``.

        Returns the removed participant (None when the connection was no
        longer bound, e.g. after a rebind) and whether the room's timer
        was cancelled because the room became empty.
        """
        with self.lock:
            room = self.get(code)
            participant = room.find_participant(connection_id)
            if participant is None:
                return None, False
            room.participants.remove(participant)
            room.touch()
            timer_cancelled = False
            if not room.participants:
                timer_cancelled = room.timer.cancel()
            return participant, timer_cancelled

    # ---- voting ----

    def cast_vote(self, code: str, connection_id: str, card, confidence=None) -> Vote:
        if card is None or str(card) == '':
            raise ValidationError('A card is required')
        confidence = confidence or 'medium'
        if confidence not in CONFIDENCE_LEVELS:
            raise ValidationError(f'Unknown confidence level: {confidence}')
        with self.lock:
            room = self.get(code)
            if not self.observers_can_vote:
                participant = room.find_participant(connection_id)
                if participant is not None and participant.role == 'observer':
                    raise ValidationError('Observers cannot vote')
            vote = Vote(card=str(card), confidence=confidence)
            room.votes[connection_id] = vote
            room.touch()
            return vote

    def toggle_reveal(self, code: str) -> Room:
        with self.lock:
            room = self.get(code)
            room.cards_revealed = not room.cards_revealed
            if room.cards_revealed:
                room.rounds += 1
            room.touch()
            return room

    def clear_votes(self, code: str) -> Room:
        with self.lock:
            room = self.get(code)
            room.votes.clear()
            room.cards_revealed = False
            room.touch()
            return room

    # ---- story & configuration ----

    def update_story(self, code: str, updates) -> Story:
        if not isinstance(updates, dict):
            raise ValidationError('Story updates must be an object')
        with self.lock:
            room = self.get(code)
            story = room.current_story
            for wire_name, attr in Story.FIELDS.items():
                value = updates.get(wire_name)
                if value is None:
                    continue
                if wire_name == 'estimationType':
                    self._check_estimation_type(value)
                elif wire_name == 'links':
                    value = _clean_links(value)
                elif wire_name == 'acceptanceCriteria':
                    value = _clean_criteria(value)
                else:
                    value = str(value)
                setattr(story, attr, value)
            room.touch()
            return story

    def change_estimation_type(self, code: str, estimation_type) -> Room:
        self._check_estimation_type(estimation_type)
        with self.lock:
            room = self.get(code)
            room.current_story.estimation_type = estimation_type
            room.touch()
            return room

    def _check_estimation_type(self, estimation_type) -> None:
        if self.strict_estimation_types and estimation_type not in ESTIMATION_TYPES:
            raise ValidationError(f'Unknown estimation type: {estimation_type}')

    def change_card_set(self, code: str, card_set, custom_cards=None) -> Room:
        if not card_set:
            raise ValidationError('A card set is required')
        if custom_cards is not None and not isinstance(custom_cards, list):
            raise ValidationError('customCards must be a list')
        with self.lock:
            room = self.get(code)
            room.card_set = str(card_set)
            if custom_cards is not None:
                room.custom_cards = [str(c) for c in custom_cards]
            # A new scale invalidates votes cast on the old one
            room.votes.clear()
            room.cards_revealed = False
            room.touch()
            return room

    def complete_story(self, code: str, estimate=None, consensus=None) -> CompletionOutcome:
        with self.lock:
            room = self.get(code)
            if estimate is None or consensus is None:
                suggested, agreed = suggest_estimate(v.card for v in room.votes.values())
                estimate = suggested if estimate is None else estimate
                consensus = agreed if consensus is None else consensus
            story = room.current_story
            completed = CompletedStory(
                title=story.title,
                description=story.description,
                estimate=str(estimate),
                consensus=bool(consensus),
                rounds=max(1, room.rounds),
                participant_count=len(room.participants),
                vote_count=len(room.votes),
                estimation_type=story.estimation_type,
            )
            room.completed_stories.append(completed)
            room.stats.record(completed)
            room.current_story = Story(estimation_type=story.estimation_type)
            room.votes.clear()
            room.cards_revealed = False
            room.rounds = 0
            timer_cancelled = room.timer.cancel()
            room.touch()
            return CompletionOutcome(completed, room.stats, timer_cancelled)

    # ---- timer state ----

    def start_timer(self, code: str, duration: int) -> Tuple[Room, int]:
        with self.lock:
            room = self.get(code)
            generation = room.timer.start(duration)
            room.touch()
            return room, generation

    def stop_timer(self, code: str) -> Room:
        with self.lock:
            room = self.get(code)
            room.timer.cancel()
            room.touch()
            return room

    def tick_timer(self, code: str, generation: int) -> Optional[TickOutcome]:
        """Advance the countdown by one second.

        Returns None when the room is gone or the countdown that scheduled
        this tick has since been stopped or replaced.
        """
        with self.lock:
            room = self._rooms.get(normalize_room_code(code))
            if room is None:
                return None
            timer = room.timer
            if not timer.active or timer.generation != generation:
                return None
            timer.remaining -= 1
            if timer.remaining <= 0:
                timer.cancel()
                return TickOutcome(remaining=0, finished=True)
            return TickOutcome(remaining=timer.remaining, finished=False)


def _clean_links(links):
    if not isinstance(links, list):
        raise ValidationError('links must be a list')
    cleaned = []
    for link in links:
        if not isinstance(link, dict):
            raise ValidationError('Each link needs a label and url')
        cleaned.append({'label': str(link.get('label') or ''), 'url': str(link.get('url') or '')})
    return cleaned


def _clean_criteria(criteria):
    if not isinstance(criteria, list):
        raise ValidationError('acceptanceCriteria must be a list')
    cleaned = []
    for item in criteria:
        if isinstance(item, str):
            item = {'text': item}
        if not isinstance(item, dict):
            raise ValidationError('Each acceptance criterion needs text')
        cleaned.append({'text': str(item.get('text') or ''), 'completed': bool(item.get('completed'))})
    return cleaned
