"""Image moderation decision table.

Maps per-category SafeSearch likelihood labels to an allow/block verdict.
The policy is fail-closed: whenever a classification is missing, malformed or
could not be obtained, the verdict is a block.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping


class Likelihood(str, enum.Enum):
    UNKNOWN = "UNKNOWN"
    VERY_UNLIKELY = "VERY_UNLIKELY"
    UNLIKELY = "UNLIKELY"
    POSSIBLE = "POSSIBLE"
    LIKELY = "LIKELY"
    VERY_LIKELY = "VERY_LIKELY"

    @property
    def rank(self) -> int:
        return _LIKELIHOOD_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, Likelihood):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Likelihood):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Likelihood):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Likelihood):
            return NotImplemented
        return self.rank >= other.rank


_LIKELIHOOD_ORDER = tuple(Likelihood)

CATEGORIES = ("adult", "violence", "racy", "medical", "spoof")

# Medical and spoofed images are never blocked; medical content can be legitimate.
BLOCK_THRESHOLDS: Mapping[str, frozenset[Likelihood]] = MappingProxyType(
    {
        "adult": frozenset({Likelihood.LIKELY, Likelihood.VERY_LIKELY}),
        "violence": frozenset({Likelihood.VERY_LIKELY}),
        "racy": frozenset({Likelihood.VERY_LIKELY}),
        "medical": frozenset(),
        "spoof": frozenset(),
    }
)

UNAVAILABLE_REASON = "classifier: UNAVAILABLE"

BLOCKED_MESSAGE = (
    "This image cannot be uploaded as it may violate our content policies. "
    "If you believe this is an error, please contact support."
)
RETRY_MESSAGE = "Unable to verify image safety. Please try again."


@dataclass(frozen=True)
class ModerationVerdict:
    categories: Mapping[str, Likelihood]
    block_reasons: tuple[str, ...] = ()
    error: str | None = None

    @property
    def blocked(self) -> bool:
        return bool(self.block_reasons)

    @property
    def safe(self) -> bool:
        return not self.blocked

    @property
    def block_reason(self) -> str | None:
        return ", ".join(self.block_reasons) if self.block_reasons else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "safe": self.safe,
            "blocked": self.blocked,
            "categories": {name: self.categories[name].value for name in CATEGORIES},
            "blockReason": self.block_reason,
            "error": self.error,
        }


def should_block(category: str, likelihood: Likelihood) -> bool:
    return likelihood in BLOCK_THRESHOLDS.get(category, frozenset())


def evaluate(category_likelihoods: Mapping[str, Likelihood]) -> ModerationVerdict:
    """Classify an image from its per-category likelihoods.

    Categories that are missing or ``None`` count as ``UNKNOWN``. Any other
    unrecognised label fails closed. Block reasons follow the fixed
    ``CATEGORIES`` order.
    """
    categories: dict[str, Likelihood] = {}
    for name in CATEGORIES:
        raw = category_likelihoods.get(name)
        if raw is None:
            categories[name] = Likelihood.UNKNOWN
            continue
        try:
            categories[name] = Likelihood(raw)
        except ValueError:
            return evaluate_unavailable("Unrecognized likelihood label")
    reasons = tuple(
        f"{name}: {likelihood.value}" for name, likelihood in categories.items() if should_block(name, likelihood)
    )
    return ModerationVerdict(categories=MappingProxyType(categories), block_reasons=reasons)


def evaluate_unavailable(error: str = "Moderation service unavailable") -> ModerationVerdict:
    categories = {name: Likelihood.UNKNOWN for name in CATEGORIES}
    return ModerationVerdict(
        categories=MappingProxyType(categories),
        block_reasons=(UNAVAILABLE_REASON,),
        error=error,
    )


def parse_annotation(annotation: Any) -> ModerationVerdict:
    """Build a verdict from a raw classifier annotation.

    Anything that is not a mapping of all five categories to recognised
    likelihood labels is treated as an unavailable classification.
    """
    if not isinstance(annotation, Mapping):
        return evaluate_unavailable("Unable to analyze image content")

    parsed: dict[str, Likelihood] = {}
    for name in CATEGORIES:
        raw = annotation.get(name)
        if raw is None:
            return evaluate_unavailable("Unable to analyze image content")
        try:
            parsed[name] = Likelihood(raw)
        except ValueError:
            return evaluate_unavailable("Unrecognized likelihood label")
    return evaluate(parsed)


def user_message(verdict: ModerationVerdict) -> str:
    if not verdict.blocked:
        return ""
    if verdict.error:
        return RETRY_MESSAGE
    # Never reveal which category tripped the block.
    return BLOCKED_MESSAGE
