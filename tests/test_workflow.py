import pytest

from sigmavie.errors import IllegalTransitionError, ValidationError
from sigmavie.workflow import OrderStatus, can_transition, check_transition, is_final, parse_status


@pytest.mark.parametrize('current, requested', [
    ('PENDING', 'CONFIRMED'),
    ('PENDING', 'CANCELLED'),
    ('CONFIRMED', 'SHIPPED'),
])
def test_allowed_transitions(current, requested):
    assert can_transition(current, requested)
    assert check_transition(current, requested) is OrderStatus(requested)


@pytest.mark.parametrize('current, requested', [
    ('SHIPPED', 'CANCELLED'),
    ('CANCELLED', 'PENDING'),
    ('CONFIRMED', 'CANCELLED'),
    ('PENDING', 'SHIPPED'),
])
def test_illegal_transitions_raise(current, requested):
    with pytest.raises(IllegalTransitionError) as err:
        check_transition(current, requested)
    assert err.value.status_code == 409
    assert err.value.current == current


def test_unknown_status():
    with pytest.raises(ValidationError):
        parse_status('LOST')
    assert parse_status('cancelled') is OrderStatus.CANCELLED


def test_final_states():
    assert is_final('SHIPPED')
    assert is_final('CANCELLED')
    assert not is_final('PENDING')


def test_parsed_members_pass_through():
    assert parse_status(OrderStatus.SHIPPED) is OrderStatus.SHIPPED
    assert check_transition('PENDING', OrderStatus.CANCELLED) is OrderStatus.CANCELLED
    assert check_transition(OrderStatus.CONFIRMED, OrderStatus.SHIPPED) is OrderStatus.SHIPPED
    with pytest.raises(IllegalTransitionError):
        check_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED)
