# manion/worker.py
"""
독립 실행 작업 워커: python -m manion.worker

API 프로세스와 같은 kv_store를 보고 대기 중인 영상 생성 작업을 처리한다.
이 워커를 쓸 때는 API 쪽 MANION_INLINE_WORKER=0 으로 인라인 루프를 끈다.
"""
from __future__ import annotations

import argparse
import logging

from .config import Settings
from .db import decide_database_url, make_engine, make_session_factory
from .jobs import JobRunner, MockVideoGenerator
from .kv import KVStore

log = logging.getLogger("manion.worker")


def build_runner(settings: Settings) -> JobRunner:
    kv = KVStore(make_session_factory(make_engine(decide_database_url())))
    return JobRunner(kv, MockVideoGenerator(settings.video_base_url), max_attempts=settings.job_max_attempts)


def main(argv=None) -> None:
    settings = Settings.from_env()
    ap = argparse.ArgumentParser(description="Manion video job worker")
    ap.add_argument("--interval", type=float, default=settings.job_poll_interval, help="poll interval (seconds)")
    ap.add_argument("--once", action="store_true", help="process due jobs once and exit")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    runner = build_runner(settings)
    if args.once:
        log.info("processed %d job(s)", runner.run_due())
        return
    try:
        runner.run_forever(args.interval)
    except KeyboardInterrupt:
        log.info("worker stopped")


if __name__ == "__main__":
    main()
