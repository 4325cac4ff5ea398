from fastapi import Header, HTTPException, status

from attempt_engine.judge.executor import get_executor  # noqa: F401  re-exported dependency


def get_student_id(x_student_id: str = Header(None)) -> int:
    """Caller identity, set by the upstream auth layer in the X-Student-Id header."""
    if not x_student_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing student identity",
        )
    try:
        return int(x_student_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid student identity",
        )
