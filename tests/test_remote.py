import asyncio

import pytest

from repo_insight.remote import RemoteClient, RemoteError, is_client_error, with_timeout


class Flaky:
    def __init__(self, failures: list[Exception], result="ok"):
        self.failures = list(failures)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class TestRemoteClient:
    async def test_success_on_first_attempt(self, no_sleep):
        op = Flaky([])
        assert await RemoteClient(sleep=no_sleep).call(op) == "ok"
        assert op.calls == 1
        assert no_sleep.delays == []

    async def test_retries_with_exponential_backoff(self, no_sleep):
        op = Flaky([RemoteError("boom"), RemoteError("boom")])
        retries = []

        result = await RemoteClient(sleep=no_sleep).call(
            op, on_retry=lambda attempt, total, delay: retries.append((attempt, total, delay))
        )

        assert result == "ok"
        assert op.calls == 3
        assert retries == [(1, 3, 1000), (2, 3, 2000)]
        assert no_sleep.delays == [1.0, 2.0]

    async def test_reraises_original_after_exhausting_attempts(self, no_sleep):
        last = RemoteError("third")
        op = Flaky([RemoteError("first"), RemoteError("second"), last])

        with pytest.raises(RemoteError) as exc_info:
            await RemoteClient(sleep=no_sleep).call(op)

        assert exc_info.value is last
        assert op.calls == 3

    async def test_client_error_not_retried(self, no_sleep):
        op = Flaky([RemoteError("not found", status_code=404)])
        with pytest.raises(RemoteError):
            await RemoteClient(sleep=no_sleep).call(op)
        assert op.calls == 1
        assert no_sleep.delays == []

    async def test_client_error_detected_from_message(self, no_sleep):
        op = Flaky([RuntimeError("GitHub API error: 404")])
        retries = []
        with pytest.raises(RuntimeError):
            await RemoteClient(sleep=no_sleep).call(op, on_retry=lambda *args: retries.append(args))
        assert op.calls == 1
        assert retries == []

    async def test_custom_attempt_count(self, no_sleep):
        op = Flaky([RemoteError("boom")] * 5)
        with pytest.raises(RemoteError):
            await RemoteClient(sleep=no_sleep).call(op, max_retries=5)
        assert op.calls == 5
        assert no_sleep.delays == [1.0, 2.0, 4.0, 8.0]


class TestIsClientError:
    def test_status_codes(self):
        assert is_client_error(RemoteError("x", status_code=403))
        assert is_client_error(RemoteError("x", status_code=429))
        assert not is_client_error(RemoteError("x", status_code=500))
        assert not is_client_error(RemoteError("x", status_code=502))

    def test_plain_exceptions(self):
        assert is_client_error(ValueError("HTTP error: 401"))
        assert not is_client_error(ValueError("connection reset"))


class TestWithTimeout:
    async def test_returns_result_in_time(self):
        async def quick():
            return [1]

        assert await with_timeout(quick(), 1.0, fallback=[]) == [1]

    async def test_returns_fallback_on_timeout(self):
        async def slow():
            await asyncio.sleep(10)
            return [1]

        assert await with_timeout(slow(), 0.01, fallback=[]) == []
