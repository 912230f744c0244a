# scripts/reconcile_daemon.py
from __future__ import annotations

import logging
import time

from services.observability import configure_logging
from services.reconcile import run_reconcile
from settings import settings


logger = logging.getLogger("lnmomo.reconcile_daemon")


def run_once() -> dict:
    result = run_reconcile()
    summary = result.get("summary") or {}
    logger.info(
        "Reconcile sweep run_at=%s | processed=%s transitioned=%s unchanged=%s errors=%s",
        result.get("run_at"),
        result.get("processed_count"),
        summary.get("transitioned"),
        summary.get("unchanged"),
        summary.get("errors"),
    )
    return result


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    interval = max(1, int(settings.RECONCILE_INTERVAL_SECONDS))
    logger.info("Reconcile daemon starting; interval=%ss", interval)

    while True:
        try:
            run_once()
        except KeyboardInterrupt:
            logger.info("Reconcile daemon exiting")
            raise
        except Exception:
            # a failed sweep (store down) is retried on the next tick
            logger.exception("Reconcile sweep failed")
        time.sleep(interval)


if __name__ == "__main__":
    main()
