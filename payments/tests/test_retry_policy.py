from unittest.mock import Mock

import pytest
from cart.models import Cart
from cart.tests.factories import CartFactory
from django.db import IntegrityError, OperationalError
from payments.exceptions import RetriesExhausted
from payments.retry import RetryPolicy, is_transient_conflict
from tenacity import wait_none


class _PgError(Exception):
    def __init__(self, sqlstate):
        super().__init__("driver error")
        self.sqlstate = sqlstate


def _wrapped(sqlstate):
    try:
        raise OperationalError("driver error") from _PgError(sqlstate)
    except OperationalError as exc:
        return exc


@pytest.mark.parametrize(
    "exc, expected",
    [
        (OperationalError("database is locked"), True),
        (OperationalError("database table is locked: payments_payment"), True),
        (OperationalError("ERROR: deadlock detected"), True),
        (OperationalError("could not serialize access due to read/write dependencies"), True),
        (_wrapped("40001"), True),
        (_wrapped("40P01"), True),
        (_wrapped("08006"), False),
        (OperationalError("no such table: payments_payment"), False),
        (IntegrityError("database is locked"), False),
        (ValueError("database is locked"), False),
    ],
)
def test_is_transient_conflict(exc, expected):
    assert is_transient_conflict(exc) is expected


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


@pytest.mark.django_db
def test_returns_first_success():
    work = Mock(return_value="done")
    assert RetryPolicy(wait=wait_none()).run(work) == "done"
    assert work.call_count == 1


@pytest.mark.django_db
def test_retries_transient_until_success():
    work = Mock(side_effect=[OperationalError("database is locked"), OperationalError("database is locked"), 42])
    assert RetryPolicy(max_attempts=3, wait=wait_none()).run(work) == 42
    assert work.call_count == 3


@pytest.mark.django_db
def test_non_transient_error_propagates_unchanged():
    work = Mock(side_effect=KeyError("boom"))
    with pytest.raises(KeyError):
        RetryPolicy(wait=wait_none()).run(work)
    assert work.call_count == 1


@pytest.mark.django_db
def test_exhaustion_raises_with_last_conflict_as_cause():
    last = OperationalError("database is locked")
    work = Mock(side_effect=last)
    with pytest.raises(RetriesExhausted) as info:
        RetryPolicy(max_attempts=2, wait=wait_none()).run(work)
    assert work.call_count == 2
    assert info.value.__cause__ is last
    assert info.value.retryable


@pytest.mark.django_db
def test_custom_classifier_is_honoured():
    work = Mock(side_effect=[KeyError("again"), "ok"])
    policy = RetryPolicy(is_transient=lambda exc: isinstance(exc, KeyError), wait=wait_none())
    assert policy.run(work) == "ok"


@pytest.mark.django_db
def test_each_attempt_rolls_back_its_own_writes():
    cart = CartFactory()
    calls = {"n": 0}

    def work():
        calls["n"] += 1
        Cart.objects.filter(id=cart.id).update(status=Cart.STATUS_CANCELLED)
        if calls["n"] == 1:
            raise OperationalError("database is locked")
        return Cart.objects.get(id=cart.id).status

    assert RetryPolicy(wait=wait_none()).run(work) == Cart.STATUS_CANCELLED
    assert calls["n"] == 2

    def always_conflicts():
        Cart.objects.filter(id=cart.id).update(status=Cart.STATUS_ACTIVE)
        raise OperationalError("database is locked")

    with pytest.raises(RetriesExhausted):
        RetryPolicy(max_attempts=2, wait=wait_none()).run(always_conflicts)
    assert Cart.objects.get(id=cart.id).status == Cart.STATUS_CANCELLED
