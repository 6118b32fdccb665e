# worker.py
from __future__ import annotations

import argparse
import os
import shutil
import sys
from typing import List

from redis import Redis
from rq import Worker, Queue
from rq.logutils import setup_loghandlers

# 프로젝트 루트 경로 추가 (app.* 임포트 보장)
ROOT = os.path.abspath(os.path.dirname(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.core.config import settings  # noqa: E402
from app.core.logging import logger  # noqa: E402
from app.services.audio.peaks import PeakExtractor, get_peak_extractor  # noqa: E402


def required_tools(strategy: str) -> List[str]:
    """Binaries the peaks/re-encode jobs shell out to for ``strategy``."""
    tools = [settings.FFMPEG_BIN]  # re-encode always needs ffmpeg
    if strategy.lower() == "extrema":
        tools.append(settings.AUDIOWAVEFORM_BIN)
    else:
        tools.append(settings.FFPROBE_BIN)
    return tools


def preflight() -> PeakExtractor:
    """Resolve the configured extractor before taking jobs.

    Raises ValueError for an unknown PEAKS_STRATEGY. Missing binaries are
    only warned about; each job fails on its own with a DecodeError.
    """
    extractor = get_peak_extractor()
    missing = [t for t in required_tools(settings.PEAKS_STRATEGY) if shutil.which(t) is None]
    if missing:
        logger.warning(f"[worker] not on PATH: {', '.join(missing)} (jobs using them will fail)")
    logger.info(
        f"[worker] peaks strategy={settings.PEAKS_STRATEGY} extractor={type(extractor).__name__} "
        f"pps={settings.PEAKS_PER_SECOND}"
    )
    return extractor


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="RQ worker for peaks backfill and re-encode jobs")
    p.add_argument(
        "--queues",
        default=settings.RQ_QUEUE,
        help="Comma-separated queue names (default: RQ_QUEUE)",
    )
    p.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log verbosity (default: LOG_LEVEL)",
    )
    p.add_argument(
        "--burst",
        action="store_true",
        help="Exit once the queues are drained (e.g. after backfill.py)",
    )
    return p.parse_args(argv)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)

    # rq's own handlers cover SIGINT/SIGTERM (warm shutdown after current job)
    setup_loghandlers(level=args.log_level)
    logger.setLevel(args.log_level)

    try:
        preflight()
    except ValueError as e:
        logger.error(f"[worker] {e}")
        return 1

    qnames = [q.strip() for q in str(args.queues).split(",") if q.strip()]
    if not qnames:
        logger.error("[worker] no queues specified")
        return 1

    redis_conn = Redis.from_url(settings.REDIS_URL)
    queues = [Queue(name, connection=redis_conn) for name in qnames]
    worker = Worker(queues, connection=redis_conn, name=os.environ.get("WORKER_NAME"))
    logger.info(f"[worker] started queues={qnames} burst={args.burst}")
    worker.work(with_scheduler=False, burst=args.burst)
    logger.info("[worker] exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
