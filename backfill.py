# backfill.py
from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, List

from app.core.logging import logger


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Backfill peaks / CBR re-encode for stored audio")
    p.add_argument(
        "--reencode",
        action="store_true",
        help="Re-encode each audio to CBR MP3 first (implies peak regeneration)",
    )
    p.add_argument(
        "--force",
        action="store_true",
        help="Regenerate peaks even where an artifact already exists",
    )
    p.add_argument(
        "--inline",
        action="store_true",
        help="Run jobs in this process instead of enqueueing them on RQ",
    )
    p.add_argument("audio_ids", nargs="*", help="Limit to these audio ids (default: all)")
    return p.parse_args(argv)


def run(args: argparse.Namespace) -> int:
    from app.services.tasks import jobs

    audio_ids = args.audio_ids or jobs.list_audio_ids()
    if not audio_ids:
        logger.info("[backfill] no audio records found")
        return 0

    if args.inline:
        if args.reencode:
            task: Callable[[str], object] = jobs.reencode_audio_job
        else:
            task = lambda audio_id: jobs.regenerate_peaks_job(audio_id, force=args.force)
    else:
        from app.services.tasks import queue
        if args.reencode:
            task = queue.enqueue_reencode
        else:
            task = lambda audio_id: queue.enqueue_peaks(audio_id, force=args.force)

    failed = 0
    for audio_id in audio_ids:
        try:
            result = task(audio_id)
            logger.info(f"[backfill] audio={audio_id} -> {result}")
        except Exception as e:
            failed += 1
            logger.error(f"[backfill] audio={audio_id} failed: {e}")

    logger.info(f"[backfill] processed={len(audio_ids)} failed={failed}")
    return 1 if failed else 0


def main():
    logging.basicConfig(level=logging.INFO)
    sys.exit(run(parse_args()))


if __name__ == "__main__":
    main()
