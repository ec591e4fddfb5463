import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from scrumpoker.services.estimation import round_half_up

ROLES = ('voter', 'observer')
CONFIDENCE_LEVELS = ('low', 'medium', 'high')
ESTIMATION_TYPES = ('complexity', 'effort', 'risk', 'unknowns')

_ROOM_CODE_STRIP = re.compile(r'[^A-Z0-9-]')


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_room_code(code) -> str:
    """Uppercase the code and drop anything but letters, digits and hyphens."""
    if code is None:
        return ''
    return _ROOM_CODE_STRIP.sub('', str(code).strip().upper())


@dataclass
class Participant:
    id: str
    name: str
    role: str = 'voter'
    join_time: int = field(default_factory=now_ms)
    last_seen: int = field(default_factory=now_ms)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'role': self.role,
            'joinTime': self.join_time,
            'lastSeen': self.last_seen,
        }


@dataclass
class Vote:
    card: str
    confidence: str = 'medium'
    timestamp: int = field(default_factory=now_ms)

    def to_dict(self):
        return {'card': self.card, 'confidence': self.confidence, 'timestamp': self.timestamp}


@dataclass
class Story:
    title: str = ''
    description: str = ''
    template: str = 'user-story'
    links: List[Dict[str, str]] = field(default_factory=list)
    acceptance_criteria: List[Dict[str, Any]] = field(default_factory=list)
    estimation_type: str = 'complexity'

    # wire name -> attribute
    FIELDS = {
        'title': 'title',
        'description': 'description',
        'template': 'template',
        'links': 'links',
        'acceptanceCriteria': 'acceptance_criteria',
        'estimationType': 'estimation_type',
    }

    def to_dict(self):
        return {
            'title': self.title,
            'description': self.description,
            'template': self.template,
            'links': [dict(link) for link in self.links],
            'acceptanceCriteria': [dict(item) for item in self.acceptance_criteria],
            'estimationType': self.estimation_type,
        }


@dataclass(frozen=True)
class CompletedStory:
    title: str
    description: str
    estimate: str
    consensus: bool
    rounds: int
    participant_count: int
    vote_count: int
    estimation_type: str
    completed_at: int = field(default_factory=now_ms)

    def to_dict(self):
        return {
            'title': self.title,
            'description': self.description,
            'estimate': self.estimate,
            'consensus': self.consensus,
            'rounds': self.rounds,
            'participantCount': self.participant_count,
            'voteCount': self.vote_count,
            'estimationType': self.estimation_type,
            'completedAt': self.completed_at,
        }


@dataclass
class TimerState:
    duration: int = 300
    active: bool = False
    remaining: int = 0
    # Bumped on every start/stop/cancel; a scheduled tick only applies
    # while it still holds the current generation.
    generation: int = 0

    def start(self, duration: int) -> int:
        self.duration = duration
        self.active = True
        self.remaining = duration
        self.generation += 1
        return self.generation

    def cancel(self) -> bool:
        """Stop the countdown. Returns False when nothing was running."""
        was_active = self.active
        self.active = False
        self.remaining = 0
        if was_active:
            self.generation += 1
        return was_active

    def to_dict(self):
        return {'active': self.active, 'remaining': self.remaining, 'duration': self.duration}


@dataclass
class Stats:
    total_stories: int = 0
    total_rounds: int = 0
    average_rounds: float = 0
    consensus_rate: int = 0
    consensus_count: int = 0

    def record(self, completed: CompletedStory) -> None:
        self.total_stories += 1
        self.total_rounds += completed.rounds
        if completed.consensus:
            self.consensus_count += 1
        self.average_rounds = round_half_up(self.total_rounds / self.total_stories, 1)
        self.consensus_rate = int(round_half_up(100 * self.consensus_count / self.total_stories))

    def to_dict(self):
        return {
            'totalStories': self.total_stories,
            'totalRounds': self.total_rounds,
            'averageRounds': self.average_rounds,
            'consensusRate': self.consensus_rate,
        }


@dataclass
class Room:
    id: str
    name: str
    card_set: str = 'fibonacci'
    custom_cards: List[str] = field(default_factory=list)
    card_help: Dict[str, str] = field(default_factory=dict)
    templates: Dict[str, Any] = field(default_factory=dict)
    created_at: int = field(default_factory=now_ms)
    last_activity: int = field(default_factory=now_ms)
    participants: List[Participant] = field(default_factory=list)
    current_story: Story = field(default_factory=Story)
    votes: Dict[str, Vote] = field(default_factory=dict)
    cards_revealed: bool = False
    timer: TimerState = field(default_factory=TimerState)
    completed_stories: List[CompletedStory] = field(default_factory=list)
    stats: Stats = field(default_factory=Stats)
    # Reveals of the current story
    rounds: int = 0

    def touch(self) -> None:
        self.last_activity = now_ms()

    def find_participant(self, participant_id: str) -> Optional[Participant]:
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None

    def find_by_name(self, name: str) -> Optional[Participant]:
        for p in self.participants:
            if p.name == name:
                return p
        return None

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'createdAt': self.created_at,
            'lastActivity': self.last_activity,
            'participants': [p.to_dict() for p in self.participants],
            'currentStory': self.current_story.to_dict(),
            'votes': {pid: vote.to_dict() for pid, vote in self.votes.items()},
            'cardsRevealed': self.cards_revealed,
            'timer': self.timer.to_dict(),
            'cardSet': self.card_set,
            'customCards': list(self.custom_cards),
            'cardHelp': dict(self.card_help),
            'templates': dict(self.templates),
            'completedStories': [s.to_dict() for s in self.completed_stories],
            'stats': self.stats.to_dict(),
        }
