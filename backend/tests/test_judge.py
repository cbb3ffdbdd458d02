"""
Tests for the judge client and test-case runner.
"""
import json

import httpx
import pytest

from oapoint.errors import JudgeUnavailable
from oapoint.services.judge import HttpCodeExecutor, clean_output, run_cases

from conftest import FakeExecutor


def _executor(handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpCodeExecutor(base_url="http://judge.test", api_key="secret", client=client, **kwargs)


class TestHttpCodeExecutor:
    def test_posts_code_and_parses_result(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("X-Api-Key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"output": "5\n", "error": None, "timeMs": 12})

        result = _executor(handler).execute("int main(){}", "cpp", "2 3")

        assert seen["url"] == "http://judge.test/execute"
        assert seen["key"] == "secret"
        assert seen["body"] == {"code": "int main(){}", "language": "cpp", "input": "2 3"}
        assert result.output == "5"
        assert result.success
        assert result.time_ms == 12

    def test_results_are_cached(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"output": "5", "timeMs": 1})

        executor = _executor(handler)
        executor.execute("code", "cpp", "2 3")
        executor.execute("code", "cpp", "2 3")
        executor.execute("code", "cpp", "3 4")

        assert len(calls) == 2

    def test_compile_error_is_reported(self):
        def handler(request):
            return httpx.Response(200, json={"output": "", "error": "expected ';'", "timeMs": 0})

        result = _executor(handler).execute("bad", "cpp", "")
        assert not result.success
        assert result.error == "expected ';'"

    def test_http_error_raises_judge_unavailable(self):
        def handler(request):
            return httpx.Response(503, json={"message": "down"})

        with pytest.raises(JudgeUnavailable):
            _executor(handler).execute("code", "cpp", "")

    def test_network_error_raises_judge_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(JudgeUnavailable):
            _executor(handler).execute("code", "cpp", "")


@pytest.mark.parametrize("raw,expected", [
    ("  5 \n", "5"),
    ('"hello"', "hello"),
    ('"a" "b"', 'a" "b'),
    ("", ""),
    (None, ""),
])
def test_clean_output(raw, expected):
    assert clean_output(raw) == expected


def test_run_cases_compares_cleaned_outputs():
    executor = FakeExecutor(outputs={"1": "2", "2": '"4"', "3": "7"})
    cases = [
        {"input": "1", "output": "2"},
        {"input": "2", "output": "4 "},
        {"input": "3", "output": "6", "isHidden": True},
    ]

    results = run_cases(executor, "code", "cpp", cases)

    assert [r["passed"] for r in results] == [True, True, False]
    assert results[2]["isHidden"] is True
    assert results[2]["actualOutput"] == "7"


def test_run_cases_fails_on_execution_error():
    executor = FakeExecutor(outputs={"1": "2"}, error="Runtime error")
    results = run_cases(executor, "code", "cpp", [{"input": "1", "output": ""}])
    assert results[0]["passed"] is False
    assert results[0]["error"] == "Runtime error"
