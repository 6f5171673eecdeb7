import pytest

from alzooka import relationships
from alzooka.relationships import (
    Effect,
    RelationshipAction,
    RelationshipRecord,
    RelationshipState,
    RelationshipStatus,
    SelfRelationshipError,
)

A = 1
B = 2


def _apply(record, transition):
    """Minimal in-memory store applying a planned transition to a single record."""
    if transition.effect == Effect.insert:
        return transition.record
    if transition.effect == Effect.update:
        target = transition.record
        if record and (record.requester_id, record.addressee_id) == (target.requester_id, target.addressee_id):
            return target
        return record
    if transition.effect == Effect.delete:
        return None
    return record


def test_no_record_means_none_for_both_sides():
    assert relationships.compute_state(A, B, None) == RelationshipState.none
    assert relationships.compute_state(B, A, None) == RelationshipState.none


def test_pending_record_is_seen_from_both_orientations():
    record = RelationshipRecord(A, B, RelationshipStatus.pending)
    assert relationships.compute_state(A, B, record) == RelationshipState.pending_sent
    assert relationships.compute_state(B, A, record) == RelationshipState.pending_received


def test_record_for_another_pair_is_ignored():
    record = RelationshipRecord(A, 3, RelationshipStatus.accepted)
    assert relationships.compute_state(A, B, record) == RelationshipState.none


def test_request_reports_pending_sent_and_notifies_target():
    transition = relationships.plan(RelationshipAction.request, A, B, None)
    assert transition.effect == Effect.insert
    assert transition.record == RelationshipRecord(A, B, RelationshipStatus.pending)
    assert transition.state == RelationshipState.pending_sent
    assert transition.notification.recipient_id == B
    assert transition.notification.type == "friend_request"

    record = _apply(None, transition)
    assert relationships.compute_state(A, B, record) == RelationshipState.pending_sent


def test_request_then_accept_makes_both_sides_friends():
    record = _apply(None, relationships.plan(RelationshipAction.request, A, B, None))
    accept = relationships.plan(RelationshipAction.accept, B, A, record)
    assert accept.effect == Effect.update
    assert accept.notification.recipient_id == A
    assert accept.notification.type == "friend_accepted"

    record = _apply(record, accept)
    assert relationships.compute_state(A, B, record) == RelationshipState.friends
    assert relationships.compute_state(B, A, record) == RelationshipState.friends


def test_request_then_cancel_returns_to_none():
    record = _apply(None, relationships.plan(RelationshipAction.request, A, B, None))
    cancel = relationships.plan(RelationshipAction.cancel, A, B, record)
    assert cancel.effect == Effect.delete
    assert cancel.notification is None

    record = _apply(record, cancel)
    assert relationships.compute_state(A, B, record) == RelationshipState.none


def test_reject_deletes_without_notification():
    record = RelationshipRecord(A, B, RelationshipStatus.pending)
    reject = relationships.plan(RelationshipAction.reject, B, A, record)
    assert reject.effect == Effect.delete
    assert reject.record == record
    assert reject.notification is None


@pytest.mark.parametrize("actor", [A, B])
def test_either_side_can_unfriend(actor):
    record = RelationshipRecord(A, B, RelationshipStatus.accepted)
    other = B if actor == A else A
    transition = relationships.plan(RelationshipAction.unfriend, actor, other, record)
    assert transition.effect == Effect.delete
    assert transition.record == record
    assert transition.state == RelationshipState.none
    assert transition.notification is None


@pytest.mark.parametrize(
    "action, record",
    [
        (RelationshipAction.accept, None),
        (RelationshipAction.cancel, None),
        (RelationshipAction.unfriend, None),
        (RelationshipAction.request, RelationshipRecord(A, B, RelationshipStatus.pending)),
        # A sent the request, so A cannot accept or reject it.
        (RelationshipAction.accept, RelationshipRecord(A, B, RelationshipStatus.pending)),
        (RelationshipAction.reject, RelationshipRecord(A, B, RelationshipStatus.pending)),
        (RelationshipAction.cancel, RelationshipRecord(B, A, RelationshipStatus.pending)),
        (RelationshipAction.request, RelationshipRecord(A, B, RelationshipStatus.accepted)),
    ],
)
def test_actions_from_the_wrong_state_are_noops(action, record):
    transition = relationships.plan(action, A, B, record)
    assert transition.effect == Effect.noop
    assert transition.applied is False
    assert transition.notification is None
    assert transition.state == relationships.compute_state(A, B, record)
    assert _apply(record, transition) == record


def test_available_actions_per_state():
    assert relationships.available_actions(RelationshipState.none) == (RelationshipAction.request,)
    assert relationships.available_actions(RelationshipState.pending_sent) == (RelationshipAction.cancel,)
    assert relationships.available_actions(RelationshipState.pending_received) == (
        RelationshipAction.accept,
        RelationshipAction.reject,
    )
    assert relationships.available_actions(RelationshipState.friends) == (RelationshipAction.unfriend,)


def test_self_relationships_are_rejected():
    with pytest.raises(SelfRelationshipError):
        relationships.compute_state(A, A, None)
    with pytest.raises(SelfRelationshipError):
        relationships.plan(RelationshipAction.request, A, A, None)
    with pytest.raises(SelfRelationshipError):
        RelationshipRecord(A, A, RelationshipStatus.pending)
