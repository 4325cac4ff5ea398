"""
Judge service - a separate FastAPI app exposing POST /judge/run.

Deploy it on a host that is not reachable by students and point
RemoteJudgeExecutor at it (JUDGE_MODE=remote, JUDGE_URL=http://<host>:8100/judge):

    uvicorn attempt_engine.judge_app:app --port 8100
"""

from fastapi import FastAPI

from attempt_engine.logging_config import setup_logging
from attempt_engine.routes import judge

setup_logging()

app = FastAPI(
    title="Assessment Judge",
    description="Runs candidate code against test cases in a child process.",
    version="1.0.0",
)

app.include_router(judge.router, tags=["Judge"])


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "healthy", "service": "attempt-engine-judge", "version": "1.0.0"}
