"""
Judge API route - runs code on this host for remote callers.

POST /judge/run is the endpoint RemoteJudgeExecutor talks to. It is
mounted only by judge_app, never by the student-facing API, and always
uses the local process executor.
"""

from typing import Any, List, Optional
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from attempt_engine.errors import UnsupportedLanguage
from attempt_engine.judge.executor import LocalProcessExecutor, JUDGE_TIMEOUT_MS
from attempt_engine.judge.harness import DEFAULT_ENTRY_FUNCTION, normalize_test_cases

router = APIRouter()


# ── Pydantic schemas ─────────────────────────────────────────

class RunRequest(BaseModel):
    language: str
    code: str
    test_cases: List[dict] = Field(default_factory=list, alias="testCases")
    time_limit_ms: int = Field(JUDGE_TIMEOUT_MS, alias="timeLimitMs", gt=0, le=30000)
    entry_function: Optional[str] = Field(None, alias="entryFunction")

    model_config = {"populate_by_name": True}


@router.post("/judge/run")
def run(request: RunRequest) -> Any:
    tests = normalize_test_cases(request.test_cases)
    try:
        result = LocalProcessExecutor().run(
            request.language, request.code, tests,
            timeout_ms=request.time_limit_ms,
            entry=request.entry_function or DEFAULT_ENTRY_FUNCTION,
        )
    except UnsupportedLanguage as e:
        raise HTTPException(status_code=400, detail=e.message)
    return result.model_dump()
