"""
Judge Service - runs student code through an external execution service.

The executor is injected: routes depend on ``get_code_executor`` and tests
override it with a fake. ``HttpCodeExecutor`` talks to the configured judge
over HTTP and caches results for a few minutes so repeated "Run" clicks with
unchanged code do not hit the judge again.

Judge contract:
    POST {JUDGE_URL}/execute  {"code", "language", "input"}
    -> {"output": str, "error": str | null, "timeMs": number}
"""

import hashlib
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import httpx

from oapoint import config
from oapoint.errors import JudgeUnavailable
from oapoint.logging_config import get_logger, log_with_context
from oapoint.ratelimit.storage import TTLStore

logger = get_logger("judge")

SUPPORTED_LANGUAGES = {
    "cpp": {
        "id": "cpp",
        "name": "C++",
        "version": "17",
        "template": (
            "#include <iostream>\n"
            "using namespace std;\n"
            "\n"
            "int main() {\n"
            "    // Your code here\n"
            "    \n"
            "    return 0;\n"
            "}"
        ),
    },
}

_QUOTED = re.compile(r'^"(.*)"$', re.DOTALL)


@dataclass
class ExecutionResult:
    output: str
    error: Optional[str] = None
    time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return not self.error


class CodeExecutor(ABC):
    """Runs one program against one input."""

    @abstractmethod
    def execute(self, code: str, language: str, input: str) -> ExecutionResult:
        pass


class HttpCodeExecutor(CodeExecutor):
    """CodeExecutor backed by the external judge service."""

    def __init__(self, base_url: str = None, api_key: str = None, timeout: float = None,
                 cache: TTLStore = None, client: httpx.Client = None):
        self.base_url = (base_url or config.JUDGE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else config.JUDGE_API_KEY
        self.timeout = timeout or config.JUDGE_TIMEOUT_SECONDS
        self.cache = cache or TTLStore(default_ttl=config.JUDGE_CACHE_TTL_SECONDS,
                                       max_entries=2000)
        self._client = client

    @staticmethod
    def cache_key(code: str, language: str, input: str) -> str:
        return hashlib.md5("{}\0{}\0{}".format(language, code, input or "").encode("utf-8")).hexdigest()

    def _post(self, payload: dict) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        url = "{}/execute".format(self.base_url)
        if self._client is not None:
            response = self._client.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    def execute(self, code: str, language: str, input: str) -> ExecutionResult:
        key = self.cache_key(code, language, input)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        start_time = time.time()
        try:
            data = self._post({"code": code, "language": language, "input": input or ""})
        except (httpx.HTTPError, ValueError) as e:
            log_with_context(logger, "ERROR", "Judge request failed: {}".format(e),
                             extra_data={"language": language, "url": self.base_url})
            raise JudgeUnavailable()

        result = ExecutionResult(
            output=(data.get("output") or "").strip(),
            error=data.get("error") or None,
            time_ms=float(data.get("timeMs") or 0),
        )
        self.cache.set(key, result)

        log_with_context(logger, "DEBUG", "Judge execution finished",
                         extra_data={
                             "language": language,
                             "round_trip_ms": round((time.time() - start_time) * 1000, 2),
                             "time_ms": result.time_ms,
                             "has_error": bool(result.error),
                         })
        return result


def clean_output(value: str) -> str:
    """Trim whitespace and one pair of surrounding double quotes."""
    value = (value or "").strip()
    match = _QUOTED.match(value)
    return match.group(1) if match else value


def run_cases(executor: CodeExecutor, code: str, language: str, cases: List[dict]) -> List[dict]:
    """
    Run code against each {input, output[, isHidden]} case.

    A case passes when the run has no error and the cleaned outputs match.
    """
    results = []
    for case in cases:
        run = executor.execute(code, language, case.get("input", ""))
        expected = clean_output(case.get("output", ""))
        actual = clean_output(run.output)
        results.append({
            "input": case.get("input", ""),
            "expectedOutput": expected,
            "actualOutput": actual,
            "passed": run.success and actual == expected,
            "executionTime": run.time_ms,
            "error": run.error,
            "isHidden": bool(case.get("isHidden", False)),
        })
    return results


_default_executor: Optional[CodeExecutor] = None


def get_code_executor() -> CodeExecutor:
    """FastAPI dependency returning the process-wide executor."""
    global _default_executor
    if _default_executor is None:
        _default_executor = HttpCodeExecutor()
    return _default_executor
