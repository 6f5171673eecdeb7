from __future__ import annotations

import enum
from dataclasses import dataclass


UPVOTE_MILESTONES = (10, 50, 100, 200, 300, 500, 1000)
# Past the last fixed milestone, every multiple of this interval is a milestone.
UPVOTE_REPEAT_INTERVAL = 1000
DOWNVOTE_MILESTONES = (20, 100)


class MilestoneKind(str, enum.Enum):
    upvote = "upvote"
    downvote = "downvote"


@dataclass(frozen=True)
class Milestone:
    threshold: int
    kind: MilestoneKind
    repeat: bool = False

    @property
    def notification_type(self) -> str:
        return f"{self.kind.value}_milestone"


def _first_crossed(milestones, previous: int, current: int) -> int | None:
    for milestone in milestones:
        if previous < milestone <= current:
            return milestone
    return None


def evaluate(previous_total: int, current_total: int) -> Milestone | None:
    """Return the milestone crossed by moving from ``previous_total`` to ``current_total``.

    At most one milestone is reported per call: the lowest fixed upvote
    milestone crossed, else a repeat-interval upvote milestone, else the
    lowest downvote milestone crossed. Decreases never fire.
    """
    hit = _first_crossed(UPVOTE_MILESTONES, previous_total, current_total)
    if hit is not None:
        return Milestone(threshold=hit, kind=MilestoneKind.upvote)

    if current_total >= UPVOTE_REPEAT_INTERVAL:
        prev_thousand = previous_total // UPVOTE_REPEAT_INTERVAL
        curr_thousand = current_total // UPVOTE_REPEAT_INTERVAL
        if curr_thousand > prev_thousand and curr_thousand >= 1:
            return Milestone(threshold=curr_thousand * UPVOTE_REPEAT_INTERVAL, kind=MilestoneKind.upvote, repeat=True)

    downvotes = abs(min(0, current_total))
    prev_downvotes = abs(min(0, previous_total))
    hit = _first_crossed(DOWNVOTE_MILESTONES, prev_downvotes, downvotes)
    if hit is not None:
        return Milestone(threshold=hit, kind=MilestoneKind.downvote)
    return None


def render(milestone: Milestone, target_type: str) -> tuple[str, str, str]:
    """Notification ``(type, title, content)`` for a milestone on a post or comment."""
    if milestone.kind == MilestoneKind.downvote:
        return (
            milestone.notification_type,
            f"Your {target_type} received {milestone.threshold} downvotes",
            "Consider reviewing your content.",
        )
    content = (
        "Incredible! Your content is resonating with the community."
        if milestone.repeat
        else "Keep up the great contributions!"
    )
    return milestone.notification_type, f"Your {target_type} reached {milestone.threshold} upvotes!", content
