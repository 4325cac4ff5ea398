"""
Code executors - run a wrapped program against a batch of test cases.

Two implementations of the same contract:
- LocalProcessExecutor: runs the language interpreter as a child process.
  The timeout is enforced by the parent, which kills the child when it
  expires. Source files live in a fresh temporary directory that is
  removed on every exit path.
- RemoteJudgeExecutor: POSTs the batch to a judge service speaking the
  /run payload (see routes/judge.py).

Neither offers resource isolation (memory, CPU, filesystem) beyond the
wall-clock timeout.
"""

import os
import sys
import time
import uuid
import tempfile
import subprocess
from abc import ABC, abstractmethod
from typing import List

import httpx
from pydantic import ValidationError

from attempt_engine.errors import JudgeUnavailable, UnsupportedLanguage
from attempt_engine.judge.harness import (
    JudgeCase, JudgeResult, LANGUAGES, DEFAULT_ENTRY_FUNCTION,
    build_program, classify, is_supported,
)
from attempt_engine.logging_config import get_logger, log_with_context

logger = get_logger("judge")

# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────
JUDGE_MODE = os.getenv("JUDGE_MODE", "local")                      # local | remote
JUDGE_URL = os.getenv("JUDGE_URL", "http://localhost:8100/judge")
JUDGE_TIMEOUT_MS = int(os.getenv("JUDGE_TIMEOUT_MS", "2000"))       # per batch
JUDGE_HTTP_TIMEOUT_SECONDS = float(os.getenv("JUDGE_HTTP_TIMEOUT_SECONDS", "10"))
JUDGE_PYTHON_BIN = os.getenv("JUDGE_PYTHON_BIN", sys.executable or "python3")
JUDGE_NODE_BIN = os.getenv("JUDGE_NODE_BIN", "node")


class Executor(ABC):
    """Runs candidate code against test cases and returns a terminal result."""

    @abstractmethod
    def run(self, language: str, code: str, tests: List[JudgeCase],
            timeout_ms: int = JUDGE_TIMEOUT_MS,
            entry: str = DEFAULT_ENTRY_FUNCTION) -> JudgeResult:
        ...


class LocalProcessExecutor(Executor):

    def __init__(self, python_bin: str = None, node_bin: str = None):
        self.interpreters = {
            "python": python_bin or JUDGE_PYTHON_BIN,
            "javascript": node_bin or JUDGE_NODE_BIN,
        }

    def run(self, language, code, tests, timeout_ms=JUDGE_TIMEOUT_MS,
            entry=DEFAULT_ENTRY_FUNCTION):
        if not is_supported(language):
            raise UnsupportedLanguage("Unsupported language: {}".format(language))

        start_time = time.time()
        extension, _ = LANGUAGES[language]
        program = build_program(language, code, tests, entry)

        with tempfile.TemporaryDirectory(prefix="judge-") as workdir:
            path = os.path.join(workdir, "{}{}".format(uuid.uuid4(), extension))
            with open(path, "w", encoding="utf-8") as f:
                f.write(program)

            try:
                completed = subprocess.run(
                    [self.interpreters[language], path],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    timeout=timeout_ms / 1000.0,
                    cwd=workdir,
                )
                result = classify(tests, _decode(completed.stdout), _decode(completed.stderr),
                                  completed.returncode)
            except subprocess.TimeoutExpired as e:
                # subprocess.run has already killed and reaped the child
                result = classify(tests, _decode(e.stdout), _decode(e.stderr),
                                  None, timed_out=True)
            except OSError as e:
                log_with_context(logger, "ERROR", "Interpreter failed to launch for {}: {}".format(language, e),
                                 extra_data={"interpreter": self.interpreters[language]})
                raise JudgeUnavailable("Interpreter for {} is not available".format(language)) from e

        duration_ms = (time.time() - start_time) * 1000
        log_with_context(logger, "INFO",
            "Judge run finished: {} ({}/{} passed)".format(result.status, result.passed, result.total),
            extra_data={"language": language, "duration_ms": round(duration_ms, 2),
                        "timeout_ms": timeout_ms})
        return result


def _decode(stream) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


class RemoteJudgeExecutor(Executor):
    """Client for a judge service reachable over HTTP."""

    def __init__(self, base_url: str = None, http_timeout: float = None, client: httpx.Client = None):
        self.base_url = (base_url or JUDGE_URL).rstrip("/")
        self.http_timeout = http_timeout or JUDGE_HTTP_TIMEOUT_SECONDS
        self.client = client

    def run(self, language, code, tests, timeout_ms=JUDGE_TIMEOUT_MS,
            entry=DEFAULT_ENTRY_FUNCTION):
        payload = {
            "language": language,
            "code": code,
            "testCases": [t.model_dump(by_alias=True) for t in tests],
            "timeLimitMs": timeout_ms,
            "entryFunction": entry,
        }
        try:
            if self.client is not None:
                resp = self.client.post(f"{self.base_url}/run", json=payload, timeout=self.http_timeout)
            else:
                with httpx.Client(timeout=self.http_timeout) as client:
                    resp = client.post(f"{self.base_url}/run", json=payload)
        except httpx.HTTPError as e:
            log_with_context(logger, "ERROR", "Judge service unreachable: {}".format(e),
                             extra_data={"judge_url": self.base_url})
            raise JudgeUnavailable("Judge service unreachable") from e

        if resp.status_code in (400, 422):
            raise UnsupportedLanguage("Unsupported language: {}".format(language))
        if resp.status_code >= 400:
            log_with_context(logger, "ERROR", "Judge service returned {}".format(resp.status_code),
                             extra_data={"judge_url": self.base_url, "body": resp.text[:500]})
            raise JudgeUnavailable("Judge service returned {}".format(resp.status_code))

        try:
            return JudgeResult.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            log_with_context(logger, "ERROR", "Judge service sent a malformed result: {}".format(e),
                             extra_data={"judge_url": self.base_url, "body": resp.text[:500]})
            raise JudgeUnavailable("Judge service sent a malformed result") from e


def get_executor() -> Executor:
    """FastAPI dependency selecting the executor from JUDGE_MODE."""
    if JUDGE_MODE == "remote":
        return RemoteJudgeExecutor()
    return LocalProcessExecutor()
