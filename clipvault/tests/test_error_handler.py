import inspect

import pytest

from clipvault.exceptions import EmbeddingException, ProviderException
from clipvault.utils.error_handler import ErrorHandler, convert_exceptions, handle_exceptions, log_exceptions


class Flaky:
    __name__ = "flaky"

    def __init__(self, failures: int):
        self.failures = failures
        self.attempts = 0

    async def __call__(self) -> str:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ProviderException(f"attempt {self.attempts} failed")
        return "ok"


async def test_retry_succeeds_after_transient_failures():
    flaky = Flaky(failures=2)
    call = handle_exceptions(retries=3, exceptions=(ProviderException,), max_delay=0.0)(flaky)

    assert await call() == "ok"
    assert flaky.attempts == 3


async def test_retry_gives_up_and_reraises_the_last_error():
    flaky = Flaky(failures=5)
    call = handle_exceptions(retries=2, exceptions=(ProviderException,), max_delay=0.0)(flaky)

    with pytest.raises(ProviderException, match="attempt 2 failed"):
        await call()
    assert flaky.attempts == 2


async def test_retry_returns_fallback():
    call = handle_exceptions(retries=1, fallback=[], max_delay=0.0)(Flaky(failures=1))
    assert await call() == []


async def test_foreign_errors_are_converted_and_clipvault_errors_pass_through():
    @convert_exceptions({Exception: ProviderException})
    async def fails(error):
        raise error

    with pytest.raises(ProviderException) as exc_info:
        await fails(KeyError("container"))
    assert exc_info.value.details["original_exception"] == "KeyError"

    with pytest.raises(EmbeddingException):
        await fails(EmbeddingException("bad batch"))


async def test_logged_errors_are_reraised_unchanged():
    @log_exceptions(custom_message="Replacing clip rows failed")
    async def fails():
        raise RuntimeError("connection reset")

    with pytest.raises(RuntimeError, match="connection reset"):
        await fails()


def test_decorated_functions_stay_coroutines():
    async def work():
        return None

    for decorator in (handle_exceptions(), log_exceptions(), convert_exceptions({})):
        assert inspect.iscoroutinefunction(decorator(work))


def test_wrap_keeps_clipvault_errors():
    original = EmbeddingException("bad batch")
    assert ErrorHandler.wrap(original, ProviderException, "ctx") is original
    wrapped = ErrorHandler.wrap(ValueError("x"), ProviderException, "ctx", clip_index=2)
    assert wrapped.details == {"clip_index": 2, "original_exception": "ValueError"}
