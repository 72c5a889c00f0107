"""
End-to-end verification of the crawl pipeline against a live database.

Creates a crawl job, optionally runs an in-process worker pool, polls the
job to a terminal state and checks the persisted extraction result.

Exit codes:
  0  success (crawl succeeded and result persisted)
  1  environment missing
  2  job creation failed
  3  worker failed to process the job
  4  timeout (job stuck)
  5  persistence verification failed
"""

from __future__ import annotations

import argparse
import logging
import os
import time

from app.errors import PipelineError
from app.logging_utils import configure_logging, log_event
from db.models.crawl_job import CrawlJobState

logger = logging.getLogger("verify_crawl_pipeline")

EXIT_OK = 0
EXIT_ENV_MISSING = 1
EXIT_JOB_CREATION_FAILED = 2
EXIT_WORKER_FAILED = 3
EXIT_TIMEOUT = 4
EXIT_PERSISTENCE_FAILED = 5


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify the crawl pipeline end to end.")
    parser.add_argument(
        "--url",
        default=os.getenv("CRAWLER_TEST_URL", "https://example.com"),
        help="Website to crawl (default: CRAWLER_TEST_URL or https://example.com).",
    )
    parser.add_argument(
        "--brand-id",
        default=None,
        help="Brand id to use (default: test-brand-<timestamp>).",
    )
    parser.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait for a terminal state.")
    parser.add_argument("--poll-interval", type=float, default=1.0, help="Seconds between status polls.")
    parser.add_argument(
        "--no-worker",
        action="store_true",
        help="Do not start an in-process worker pool; rely on an external worker.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    configure_logging()
    brand_id = args.brand_id or f"test-brand-{int(time.time())}"

    from db.config import resolve_database_url

    try:
        resolve_database_url()
    except RuntimeError as exc:
        log_event(logger, logging.ERROR, "verify_env_missing", error=str(exc))
        return EXIT_ENV_MISSING

    from app.services.pipeline import build_pipeline
    from db.repositories.extraction_result_repository import ExtractionResultRepository

    pipeline = build_pipeline()

    try:
        job_id = pipeline.ingestion.trigger(brand_id, args.url)
    except (PipelineError, RuntimeError) as exc:
        log_event(logger, logging.ERROR, "verify_job_creation_failed", brand_id=brand_id, error=str(exc))
        return EXIT_JOB_CREATION_FAILED
    log_event(logger, logging.INFO, "verify_job_created", job_id=job_id, brand_id=brand_id, url=args.url)

    if pipeline.job_store.get(job_id, brand_id=brand_id) is None:
        log_event(logger, logging.ERROR, "verify_job_missing_after_create", job_id=job_id)
        return EXIT_PERSISTENCE_FAILED

    worker_pool = None if args.no_worker else pipeline.build_worker_pool(name_prefix="verify")
    if worker_pool is not None:
        worker_pool.start()

    started = time.monotonic()
    current_state = CrawlJobState.QUEUED
    try:
        while True:
            job = pipeline.job_store.get(job_id, brand_id=brand_id)
            if job is None:
                log_event(logger, logging.ERROR, "verify_job_disappeared", job_id=job_id)
                return EXIT_PERSISTENCE_FAILED

            if job.state != current_state:
                log_event(
                    logger,
                    logging.INFO,
                    "verify_state_change",
                    job_id=job_id,
                    from_state=current_state,
                    to_state=job.state,
                    attempts=job.attempts,
                    elapsed_seconds=round(time.monotonic() - started, 2),
                )
                current_state = job.state

            if job.state == CrawlJobState.SUCCEEDED:
                break
            if job.state in CrawlJobState.TERMINAL:
                log_event(
                    logger,
                    logging.ERROR,
                    "verify_worker_failed",
                    job_id=job_id,
                    state=job.state,
                    error=job.error,
                )
                return EXIT_WORKER_FAILED
            if time.monotonic() - started >= args.timeout:
                log_event(
                    logger,
                    logging.ERROR,
                    "verify_timeout",
                    job_id=job_id,
                    state=job.state,
                    attempts=job.attempts,
                    timeout_seconds=args.timeout,
                )
                return EXIT_TIMEOUT
            time.sleep(args.poll_interval)
    finally:
        if worker_pool is not None:
            worker_pool.stop()
        pipeline.event_bus.shutdown()

    if job.result_ref is None:
        log_event(logger, logging.ERROR, "verify_result_ref_missing", job_id=job_id)
        return EXIT_PERSISTENCE_FAILED

    with pipeline.session_factory() as db:
        record = ExtractionResultRepository(db).get_result(job.result_ref, brand_id=brand_id)
        if record is None:
            log_event(logger, logging.ERROR, "verify_result_missing", job_id=job_id, result_ref=job.result_ref)
            return EXIT_PERSISTENCE_FAILED
        log_event(
            logger,
            logging.INFO,
            "verify_succeeded",
            job_id=job_id,
            result_ref=record.id,
            detected_host=record.detected_host,
            text_blocks=len(record.text_blocks),
            images=len(record.images),
            extraction_errors=len(record.extraction_errors),
        )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
