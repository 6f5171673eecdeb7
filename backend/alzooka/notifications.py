from __future__ import annotations

import re
from urllib.parse import quote

from sqlalchemy.orm import Session

from . import milestones, models
from .logging_utils import log_event, log_warning


_MENTION_PATTERN = re.compile(r"@(\w+)")
PREVIEW_LENGTH = 100


def create_notification(
    db: Session,
    *,
    user_id: int,
    type: str,
    title: str,
    content: str | None = None,
    link: str | None = None,
    related_user_id: int | None = None,
    related_post_id: int | None = None,
    related_comment_id: int | None = None,
) -> bool:
    """Store a notification for ``user_id``.

    Fire-and-forget: the caller has already committed its own change, so a
    failure here is rolled back and logged but never raised.
    """
    if related_user_id is not None and related_user_id == user_id:
        return False

    try:
        db.add(
            models.Notification(
                user_id=user_id,
                type=type,
                title=title,
                content=content,
                link=link,
                related_user_id=related_user_id,
                related_post_id=related_post_id,
                related_comment_id=related_comment_id,
            )
        )
        db.commit()
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        log_warning("notification_failed", user_id=user_id, type=type, error=str(exc))
        return False
    log_event("notification_created", user_id=user_id, type=type)
    return True


def _profile_link(username: str) -> str:
    return f"/profile/{quote(username)}"


def notify_friend_request(db: Session, *, recipient_id: int, sender: models.User) -> bool:
    return create_notification(
        db,
        user_id=recipient_id,
        type="friend_request",
        title=f"@{sender.username} sent you a friend request",
        content="Accept or decline this request",
        link=_profile_link(sender.username),
        related_user_id=sender.id,
    )


def notify_friend_accepted(db: Session, *, requester_id: int, accepter: models.User) -> bool:
    return create_notification(
        db,
        user_id=requester_id,
        type="friend_accepted",
        title=f"@{accepter.username} accepted your friend request",
        content="You are now friends!",
        link=_profile_link(accepter.username),
        related_user_id=accepter.id,
    )


def notify_vote_milestone(
    db: Session,
    *,
    owner_id: int,
    target_type: str,
    target_id: int,
    milestone: milestones.Milestone,
) -> bool:
    notification_type, title, content = milestones.render(milestone, target_type)
    return create_notification(
        db,
        user_id=owner_id,
        type=notification_type,
        title=title,
        content=content,
        link=f"/?post={target_id}" if target_type == "post" else None,
        related_post_id=target_id if target_type == "post" else None,
        related_comment_id=target_id if target_type == "comment" else None,
    )


def notify_new_comment(
    db: Session, *, post_owner_id: int, commenter: models.User, post_id: int, comment_id: int, preview: str
) -> bool:
    return create_notification(
        db,
        user_id=post_owner_id,
        type="comment",
        title=f"@{commenter.username} commented on your post",
        content=preview[:PREVIEW_LENGTH],
        link=f"/?post={post_id}&comment={comment_id}",
        related_user_id=commenter.id,
        related_post_id=post_id,
        related_comment_id=comment_id,
    )


def notify_new_reply(
    db: Session, *, comment_owner_id: int, replier: models.User, post_id: int, comment_id: int, preview: str
) -> bool:
    return create_notification(
        db,
        user_id=comment_owner_id,
        type="reply",
        title=f"@{replier.username} replied to your comment",
        content=preview[:PREVIEW_LENGTH],
        link=f"/?post={post_id}&comment={comment_id}",
        related_user_id=replier.id,
        related_post_id=post_id,
        related_comment_id=comment_id,
    )


def notify_mention(
    db: Session, *, mentioned_user_id: int, mentioner: models.User, post_id: int, comment_id: int, preview: str
) -> bool:
    return create_notification(
        db,
        user_id=mentioned_user_id,
        type="mention",
        title=f"@{mentioner.username} mentioned you",
        content=preview[:PREVIEW_LENGTH],
        link=f"/?post={post_id}&comment={comment_id}",
        related_user_id=mentioner.id,
        related_post_id=post_id,
        related_comment_id=comment_id,
    )


def parse_mentions(text: str) -> list[str]:
    seen: dict[str, None] = {}
    for match in _MENTION_PATTERN.findall(text or ""):
        seen.setdefault(match.lower(), None)
    return list(seen)
