import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from inventory_pro.exceptions import NotFound, ValidationError
from inventory_pro.utils.decorators import retry_on_transient, transactional


def test_retry_on_transient_retries_then_succeeds(app):
    calls = []

    @retry_on_transient(attempts=3, backoff=0)
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError('SELECT 1', {}, Exception('database is locked'))
        return 'ok'

    assert flaky() == 'ok'
    assert len(calls) == 3


def test_retry_on_transient_gives_up(app):
    calls = []

    @retry_on_transient(attempts=2, backoff=0)
    def broken():
        calls.append(1)
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    with pytest.raises(OperationalError):
        broken()
    assert len(calls) == 2


def test_business_errors_are_not_retried(app):
    calls = []

    @retry_on_transient(attempts=3, backoff=0)
    @transactional
    def missing():
        calls.append(1)
        raise NotFound('Item 42 not found')

    ok, error = missing()
    assert not ok
    assert isinstance(error, NotFound)
    assert len(calls) == 1


def test_transactional_maps_integrity_error(app):
    @transactional
    def duplicate():
        raise IntegrityError('INSERT', {}, Exception('UNIQUE constraint failed'))

    ok, error = duplicate()
    assert not ok
    assert isinstance(error, ValidationError)
    assert 'UNIQUE' in error.message


def test_transactional_returns_result(app):
    @transactional
    def works():
        return 42

    assert works() == (True, 42)
