import re
from datetime import datetime, timedelta, timezone

import pytest

from gradeshield.codes import CodeIssuer, generate_code
from gradeshield.config import CodeConfig
from gradeshield.exceptions import CodeExpiredError, InputValidationError, InvalidCodeError

T0 = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


class Clock:

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def issuer(repository, clock):
    return CodeIssuer(repository, CodeConfig(prefix="AG-S3-", ttl_sec=120), clock=clock)


def test_generate_code_format():
    for _ in range(50):
        assert re.fullmatch(r"AG-S3-\d{5}", generate_code("AG-S3-"))


def test_issue_sets_ttl(issuer):
    code = issuer.issue("u1")

    assert code.expires_at == T0 + timedelta(seconds=120)
    assert code.ttl_seconds == 120
    assert not code.used


def test_consume_within_ttl(issuer, clock):
    code = issuer.issue("u1")
    clock.now = T0 + timedelta(seconds=119)

    record = issuer.consume("u1", code.code.lower() + "  ")

    assert record.used
    assert record.id == code.id


def test_code_is_single_use(issuer):
    code = issuer.issue("u1")
    issuer.consume("u1", code.code)

    with pytest.raises(InvalidCodeError):
        issuer.consume("u1", code.code)


def test_expired_code_is_rejected_and_burned(issuer, clock):
    code = issuer.issue("u1")
    clock.now = T0 + timedelta(seconds=121)

    with pytest.raises(CodeExpiredError):
        issuer.consume("u1", code.code)
    with pytest.raises(InvalidCodeError) as exc:
        issuer.consume("u1", code.code)
    assert not isinstance(exc.value, CodeExpiredError)


def test_new_code_invalidates_previous(issuer, repository):
    first = issuer.issue("u1")
    second = issuer.issue("u1")

    assert repository.find_code("u1", first.code).used or first.code == second.code
    issuer.consume("u1", second.code)


def test_codes_are_per_user(issuer):
    code = issuer.issue("u1")

    with pytest.raises(InvalidCodeError):
        issuer.consume("u2", code.code)


def test_empty_code(issuer):
    with pytest.raises(InputValidationError):
        issuer.consume("u1", "   ")
