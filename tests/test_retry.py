import pytest

from cipherline_core.errors import PersistenceError, StoreUnavailableError
from cipherline_core.retry import RetryPolicy


class Flaky:
    def __init__(self, failures, exc=StoreUnavailableError):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc(f"attempt {self.calls} failed")
        return value


def test_default_schedule():
    assert RetryPolicy().delays() == [1.0, 2.0]
    assert RetryPolicy(max_attempts=1).delays() == []


def test_recovers_after_transient_failures(caplog):
    slept = []
    policy = RetryPolicy(sleep=slept.append)
    fn = Flaky(failures=2)

    assert policy.run(fn, "ok", op="ping") == "ok"
    assert fn.calls == 3
    assert slept == [1.0, 2.0]
    assert "[RETRY] ping attempt 1/3 failed" in caplog.text


def test_gives_up_after_max_attempts(caplog):
    slept = []
    policy = RetryPolicy(sleep=slept.append)
    fn = Flaky(failures=10)

    with pytest.raises(StoreUnavailableError):
        policy.run(fn, "ok")
    assert fn.calls == 3
    assert slept == [1.0, 2.0]
    assert "failed after 3 attempts" in caplog.text


def test_permanent_errors_are_not_retried():
    policy = RetryPolicy.immediate()
    fn = Flaky(failures=1, exc=PersistenceError)
    with pytest.raises(PersistenceError):
        policy.run(fn, "ok")
    assert fn.calls == 1


def test_invalid_policy():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1)
