import pytest

from alzooka import milestones
from alzooka.milestones import Milestone, MilestoneKind


@pytest.mark.parametrize(
    "previous, current, expected",
    [
        (5, 10, Milestone(10, MilestoneKind.upvote)),
        (9, 10, Milestone(10, MilestoneKind.upvote)),
        (49, 50, Milestone(50, MilestoneKind.upvote)),
        (499, 500, Milestone(500, MilestoneKind.upvote)),
        # Only the lowest crossed milestone fires.
        (5, 60, Milestone(10, MilestoneKind.upvote)),
        (999, 1500, Milestone(1000, MilestoneKind.upvote)),
        (2000, 3000, Milestone(3000, MilestoneKind.upvote, repeat=True)),
        (1999, 2000, Milestone(2000, MilestoneKind.upvote, repeat=True)),
        (1000, 2500, Milestone(2000, MilestoneKind.upvote, repeat=True)),
        (-5, 15, Milestone(10, MilestoneKind.upvote)),
        (0, -20, Milestone(20, MilestoneKind.downvote)),
        (-19, -20, Milestone(20, MilestoneKind.downvote)),
        (-50, -150, Milestone(100, MilestoneKind.downvote)),
        (0, -150, Milestone(20, MilestoneKind.downvote)),
    ],
)
def test_milestone_fires(previous, current, expected):
    assert milestones.evaluate(previous, current) == expected


@pytest.mark.parametrize(
    "previous, current",
    [
        (10, 9),
        (10, 10),
        (11, 49),
        (1000, 1001),
        (1500, 1999),
        (3000, 2999),
        (-20, -19),
        (-20, -21),
        (-100, -20),
        (0, -19),
        (0, 0),
    ],
)
def test_nothing_fires(previous, current):
    assert milestones.evaluate(previous, current) is None


def test_render_upvote_titles_and_content():
    notification_type, title, content = milestones.render(Milestone(50, MilestoneKind.upvote), "post")
    assert notification_type == "upvote_milestone"
    assert title == "Your post reached 50 upvotes!"
    assert content == "Keep up the great contributions!"

    _, title, content = milestones.render(Milestone(4000, MilestoneKind.upvote, repeat=True), "comment")
    assert title == "Your comment reached 4000 upvotes!"
    assert content.startswith("Incredible!")


def test_render_downvote():
    notification_type, title, content = milestones.render(Milestone(20, MilestoneKind.downvote), "comment")
    assert notification_type == "downvote_milestone"
    assert title == "Your comment received 20 downvotes"
    assert content == "Consider reviewing your content."
