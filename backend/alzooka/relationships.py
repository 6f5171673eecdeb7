"""Friendship state machine.

State is always computed from the single record stored for an unordered pair
of users. ``plan`` decides what a relationship action does to that record
without touching storage; the API layer applies the returned effect.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class RelationshipStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"


class RelationshipState(str, enum.Enum):
    none = "none"
    pending_sent = "pending_sent"
    pending_received = "pending_received"
    friends = "friends"


class RelationshipAction(str, enum.Enum):
    request = "request"
    cancel = "cancel"
    accept = "accept"
    reject = "reject"
    unfriend = "unfriend"


class Effect(str, enum.Enum):
    insert = "insert"
    update = "update"
    delete = "delete"
    noop = "noop"


class SelfRelationshipError(ValueError):
    pass


@dataclass(frozen=True)
class RelationshipRecord:
    requester_id: int
    addressee_id: int
    status: RelationshipStatus

    def __post_init__(self) -> None:
        if self.requester_id == self.addressee_id:
            raise SelfRelationshipError("A user cannot have a relationship with themselves")

    def involves(self, user_a: int, user_b: int) -> bool:
        return {self.requester_id, self.addressee_id} == {user_a, user_b}


@dataclass(frozen=True)
class NotificationEvent:
    recipient_id: int
    type: str
    related_user_id: int


@dataclass(frozen=True)
class Transition:
    action: RelationshipAction
    effect: Effect
    state: RelationshipState
    # Row to insert, or the exact orientation an update/delete must match.
    record: RelationshipRecord | None = None
    notification: NotificationEvent | None = None

    @property
    def applied(self) -> bool:
        return self.effect != Effect.noop


_ACTIONS_BY_STATE: dict[RelationshipState, tuple[RelationshipAction, ...]] = {
    RelationshipState.none: (RelationshipAction.request,),
    RelationshipState.pending_sent: (RelationshipAction.cancel,),
    RelationshipState.pending_received: (RelationshipAction.accept, RelationshipAction.reject),
    RelationshipState.friends: (RelationshipAction.unfriend,),
}


def _ensure_distinct(viewer_id: int, target_id: int) -> None:
    if viewer_id == target_id:
        raise SelfRelationshipError("A user cannot have a relationship with themselves")


def compute_state(viewer_id: int, target_id: int, record: RelationshipRecord | None) -> RelationshipState:
    _ensure_distinct(viewer_id, target_id)
    if record is None or not record.involves(viewer_id, target_id):
        return RelationshipState.none
    if record.status == RelationshipStatus.accepted:
        return RelationshipState.friends
    if record.requester_id == viewer_id:
        return RelationshipState.pending_sent
    return RelationshipState.pending_received


def available_actions(state: RelationshipState) -> tuple[RelationshipAction, ...]:
    return _ACTIONS_BY_STATE[state]


def plan(
    action: RelationshipAction,
    viewer_id: int,
    target_id: int,
    record: RelationshipRecord | None,
) -> Transition:
    """Work out what ``action`` by ``viewer_id`` does to the pair's record.

    Actions that are not available from the current state produce an
    ``Effect.noop`` transition that leaves the state unchanged.
    """
    state = compute_state(viewer_id, target_id, record)
    if action not in available_actions(state):
        return Transition(action=action, effect=Effect.noop, state=state, record=record)

    if action == RelationshipAction.request:
        return Transition(
            action=action,
            effect=Effect.insert,
            state=RelationshipState.pending_sent,
            record=RelationshipRecord(viewer_id, target_id, RelationshipStatus.pending),
            notification=NotificationEvent(recipient_id=target_id, type="friend_request", related_user_id=viewer_id),
        )
    if action == RelationshipAction.cancel:
        return Transition(
            action=action,
            effect=Effect.delete,
            state=RelationshipState.none,
            record=RelationshipRecord(viewer_id, target_id, RelationshipStatus.pending),
        )
    if action == RelationshipAction.accept:
        return Transition(
            action=action,
            effect=Effect.update,
            state=RelationshipState.friends,
            record=RelationshipRecord(target_id, viewer_id, RelationshipStatus.accepted),
            notification=NotificationEvent(recipient_id=target_id, type="friend_accepted", related_user_id=viewer_id),
        )
    if action == RelationshipAction.reject:
        return Transition(
            action=action,
            effect=Effect.delete,
            state=RelationshipState.none,
            record=RelationshipRecord(target_id, viewer_id, RelationshipStatus.pending),
        )
    # unfriend: either side may end the friendship, whichever orientation was stored
    return Transition(action=action, effect=Effect.delete, state=RelationshipState.none, record=record)
