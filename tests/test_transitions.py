import pytest

from services.errors import TransitionRejected
from services.statuses import OrderStatusCode as S
from services.transitions import (
    STATUS_PROGRESSION,
    can_accept,
    can_display_status_control,
    can_reject,
    ensure_can_go_offline,
    next_status,
    status_options,
    validate_transition,
)


@pytest.mark.parametrize(
    "current,expected",
    [
        (52, 53),
        (53, 65),
        (65, 54),
        (54, 56),
        (56, 57),
        (57, 58),
    ],
)
def test_next_status_progression(current, expected):
    assert next_status(current) == expected


@pytest.mark.parametrize("code", [4, 5, 8, 55, 58, 59, 263])
def test_terminal_and_pre_claim_codes_have_no_successor(code):
    assert next_status(code) is None
    assert status_options(code) == ()


def test_unknown_code_has_no_successor():
    assert next_status(999) is None
    assert status_options(999) == ()


def test_progression_table_covers_every_code():
    assert set(STATUS_PROGRESSION) == set(S)


def test_reached_offers_both_outcomes_with_delivered_first():
    assert status_options(57) == (S.DELIVERED, S.CUSTOMER_NOT_SHOWED_UP)


@pytest.mark.parametrize("code,expected", [(5, False), (8, False), (51, False), (52, True), (58, True), (263, True)])
def test_can_display_status_control_threshold(code, expected):
    assert can_display_status_control(code) is expected


def test_accept_and_reject_availability():
    assert can_accept(5)
    assert not can_accept(52)
    assert can_reject(5)
    assert can_reject(52)
    assert not can_reject(53)
    assert not can_reject(999)


def test_validate_claim_only_to_assigned():
    assert validate_transition(5, 52) == S.ASSIGNED
    with pytest.raises(TransitionRejected):
        validate_transition(5, 53)


def test_validate_rejects_changes_before_claim():
    with pytest.raises(TransitionRejected):
        validate_transition(4, 52)
    with pytest.raises(TransitionRejected):
        validate_transition(8, 53)


def test_validate_allows_default_successor():
    assert validate_transition(53, 65) == S.AT_THE_RESTAURANT


def test_validate_allows_no_show_from_reached():
    assert validate_transition(57, 263) == S.CUSTOMER_NOT_SHOWED_UP
    assert validate_transition(57, 58) == S.DELIVERED


def test_validate_rejects_skipping_and_going_back():
    with pytest.raises(TransitionRejected):
        validate_transition(52, 56)
    with pytest.raises(TransitionRejected):
        validate_transition(54, 53)
    with pytest.raises(TransitionRejected):
        validate_transition(56, 263)


def test_validate_rejects_from_terminal():
    with pytest.raises(TransitionRejected, match="конечном"):
        validate_transition(58, 53)


def test_validate_rejects_unknown_target():
    with pytest.raises(TransitionRejected):
        validate_transition(52, 999)


def test_going_offline_blocked_by_assigned_order():
    with pytest.raises(TransitionRejected):
        ensure_can_go_offline([5, 52, 58])


def test_going_offline_allowed_without_assigned_orders():
    ensure_can_go_offline([])
    ensure_can_go_offline([5, 53, 58, 263])
