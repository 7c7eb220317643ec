"""Purges expired webhook-event claims and pending signups on a poll loop."""
import logging
import os
import time

from app.billing.idempotency import purge_expired_events
from app.billing.pending_signups import purge_expired_signups
from app.core.logging import setup_logging
from app.db.session import session_scope

logger = logging.getLogger("store_janitor")

POLL_SECONDS = int(os.getenv("JANITOR_POLL_SECONDS", "3600"))


def purge_once() -> tuple[int, int]:
    with session_scope() as db:
        events = purge_expired_events(db)
        signups = purge_expired_signups(db)
    logger.info("purged %d webhook event(s) and %d pending signup(s)", events, signups)
    return events, signups


def main(once: bool = False) -> None:
    logger.info("store_janitor starting (once=%s)", once)

    while True:
        try:
            purge_once()
        except Exception:
            if once:
                raise
            logger.exception("purge failed; retrying next cycle")

        if once:
            return
        time.sleep(POLL_SECONDS)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("--once", action="store_true")
    args = parser.parse_args()

    setup_logging()
    main(once=args.once)
