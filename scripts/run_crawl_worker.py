"""
Run the crawl worker pool as a standalone process.
"""

from __future__ import annotations

import argparse
import logging
import signal
import threading

from app.logging_utils import configure_logging, log_event

logger = logging.getLogger("run_crawl_worker")


def main() -> int:
    parser = argparse.ArgumentParser(description="Lease and process crawl jobs until interrupted.")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one job with a single worker and exit.",
    )
    parser.add_argument(
        "--name-prefix",
        default="worker",
        help="Prefix for worker ids (default: worker).",
    )
    args = parser.parse_args()
    configure_logging()

    from app.services.pipeline import build_pipeline

    pipeline = build_pipeline()

    if args.once:
        outcome = pipeline.build_worker(f"{args.name_prefix}-once").run_once()
        pipeline.event_bus.shutdown()
        if outcome is None:
            log_event(logger, logging.INFO, "crawl_worker_idle")
            return 0
        log_event(
            logger,
            logging.INFO,
            "crawl_worker_outcome",
            job_id=outcome.job_id,
            status=outcome.status,
            error=outcome.error,
        )
        return 0 if outcome.status == "succeeded" else 1

    stop_requested = threading.Event()

    def _request_stop(signum: int, _frame: object) -> None:
        log_event(logger, logging.INFO, "crawl_worker_stop_requested", signal=signum)
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    pool = pipeline.build_worker_pool(name_prefix=args.name_prefix)
    pool.start()
    try:
        stop_requested.wait()
    finally:
        pool.stop()
        pipeline.event_bus.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
