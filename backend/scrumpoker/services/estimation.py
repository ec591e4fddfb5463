import math
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

# Leading numeric prefix, the way a browser reads "13pts" as 13
_NUMERIC_PREFIX = re.compile(r'^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')


def round_half_up(value: float, digits: int = 0) -> float:
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def parse_card(card) -> Optional[float]:
    """Return the numeric value of a card, or None for cards like '?' or 'XL'."""
    if card is None:
        return None
    match = _NUMERIC_PREFIX.match(str(card))
    if not match:
        return None
    value = float(match.group(1))
    return value if math.isfinite(value) else None


def _format_number(value: float) -> str:
    return str(int(value)) if value.is_integer() else str(value)


@dataclass(frozen=True)
class VoteSummary:
    values: Tuple[float, ...]
    average: float
    low: float
    high: float

    @property
    def consensus(self) -> bool:
        return self.low == self.high

    @property
    def range_label(self) -> str:
        return f"{_format_number(self.low)}-{_format_number(self.high)}"

    def to_dict(self):
        return {
            'average': self.average,
            'min': self.low,
            'max': self.high,
            'range': self.range_label,
            'consensus': self.consensus,
            'numericVotes': len(self.values),
        }


def numeric_values(cards: Iterable) -> List[float]:
    values = []
    for card in cards:
        value = parse_card(card)
        if value is not None:
            values.append(value)
    return values


def summarize_votes(cards: Iterable) -> Optional[VoteSummary]:
    """Aggregate revealed cards.

    Non-numeric cards are ignored. Returns None when no card is numeric,
    in which case only the raw per-participant results are meaningful.
    """
    values = numeric_values(cards)
    if not values:
        return None
    mean = sum(values) / len(values)
    return VoteSummary(
        values=tuple(values),
        average=round_half_up(mean, 1),
        low=min(values),
        high=max(values),
    )


def suggest_estimate(cards: Iterable) -> Tuple[str, bool]:
    """Estimate and consensus flag for completing a story.

    Mirrors what clients compute before sending complete-story, so the
    server can fill in either value when a client leaves it out.
    """
    values = numeric_values(cards)
    if not values:
        return '?', False
    mean = sum(values) / len(values)
    return _format_number(round_half_up(mean)), min(values) == max(values)
