"""
Expiry Sweep Script - finalizes or expires attempts whose time is up.

Meant to run periodically (cron, a Kubernetes CronJob, ...) next to the API.
In-progress attempts of auto-submit assessments are evaluated; every
other overdue attempt is marked expired. Safe to run concurrently with
the API and with itself: each attempt is re-checked under its row lock.

Usage:
    python expire_attempts.py
    DATABASE_URL=postgresql://... python expire_attempts.py
"""

import sys

from attempt_engine.database import SessionLocal
from attempt_engine.logging_config import setup_logging, get_logger
from attempt_engine.services.finalization import expire_overdue_attempts

import attempt_engine.models  # noqa: F401


def main():
    setup_logging()
    logger = get_logger("finalize")

    db = SessionLocal()
    try:
        counts = expire_overdue_attempts(db)
    except Exception:
        logger.exception("Expiry sweep failed")
        return 1
    finally:
        db.close()

    print(f"Evaluated: {counts['evaluated']}")
    print(f"Expired:   {counts['expired']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
