import pytest

from domain.payment.entity import PaymentStatus, can_transition, ensure_transition
from domain.payment.exceptions import StateConflictError
from domain.payment.status_mapper import map_status


@pytest.mark.parametrize(
    "state, expected",
    [
        ("authorized", PaymentStatus.AUTHORIZED),
        ("settled", PaymentStatus.CAPTURED),
        ("failed", PaymentStatus.ERROR),
        ("cancelled", PaymentStatus.CANCELLED),
        ("pending", PaymentStatus.PENDING_EXTERNAL_SYSTEM),
    ],
)
def test_known_charge_states(state, expected):
    assert map_status(state) == expected


@pytest.mark.parametrize("state", ["", None, "created", "SETTLED", "refunded", " authorized"])
def test_unknown_states_fall_back_to_initialized(state):
    assert map_status(state) == PaymentStatus.INITIALIZED


def test_lifecycle_moves_forward_only():
    assert can_transition(PaymentStatus.INITIALIZED, PaymentStatus.AUTHORIZED)
    assert can_transition(PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED)
    assert can_transition(PaymentStatus.AUTHORIZED, PaymentStatus.AUTHORIZED)
    assert not can_transition(PaymentStatus.CAPTURED, PaymentStatus.AUTHORIZED)
    assert not can_transition(PaymentStatus.CANCELLED, PaymentStatus.CAPTURED)


def test_error_is_reachable_and_recoverable():
    assert can_transition(PaymentStatus.CAPTURED, PaymentStatus.ERROR)
    assert can_transition(PaymentStatus.ERROR, PaymentStatus.AUTHORIZED)


def test_ensure_transition_raises_conflict():
    with pytest.raises(StateConflictError) as exc_info:
        ensure_transition(PaymentStatus.CAPTURED, PaymentStatus.AUTHORIZED, order_number="ORD-1")
    exc = exc_info.value
    assert exc.details["current"] == "captured"
    assert exc.details["requested"] == "authorized"
    assert exc.details["order_number"] == "ORD-1"
