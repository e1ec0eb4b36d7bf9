# manion/jobs.py
"""
영상 생성 작업 (job_<problemId>)

업로드 시 queued 작업을 KV에 기록하고, 워커가 dueAt이 지난 작업을 집어
processing → completed | failed 로 전이시킨다.
- 작업 문서가 KV에 있으므로 프로세스가 재시작돼도 대기 중 작업이 사라지지 않음
- processing 상태는 임대(lease): dueAt까지 끝나지 않으면 다음 run_due가 다시 집음
- 생성 실패 시 max_attempts까지 재시도, 이후 문제 상태도 failed
- completed 작업 문서는 삭제, failed는 남겨둠
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional

from . import history
from .kv import KVStore
from .schemas import Problem, now_iso

log = logging.getLogger(__name__)

JOB_PREFIX = "job_"
ACTIVE = ("queued", "processing")

LEASE_SECONDS = 60.0
RETRY_DELAY_SECONDS = 5.0


def job_key(problem_id: str) -> str:
    return f"{JOB_PREFIX}{problem_id}"


class MockVideoGenerator:
    """외부 AI 영상 생성 서비스 자리. 고정 URL을 돌려준다."""

    def __init__(self, base_url: str = "https://example.com") -> None:
        self.base_url = base_url.rstrip("/")

    def generate(self, problem: Problem) -> str:
        return f"{self.base_url}/generated-video-{problem.id}.mp4"


class JobRunner:
    def __init__(
        self,
        kv: KVStore,
        generator: Any,
        max_attempts: int = 3,
        lease_seconds: float = LEASE_SECONDS,
        retry_delay: float = RETRY_DELAY_SECONDS,
    ) -> None:
        self.kv = kv
        self.generator = generator
        self.max_attempts = max(1, max_attempts)
        self.lease_seconds = lease_seconds
        self.retry_delay = retry_delay
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ───────── 등록 ─────────
    def enqueue(self, problem: Problem, delay: float, now: Optional[float] = None) -> Dict[str, Any]:
        now = time.time() if now is None else now
        job = {
            "id": job_key(problem.id),
            "problemId": problem.id,
            "status": "queued",
            "dueAt": now + delay,
            "attempts": 0,
            "createdAt": now_iso(),
            "updatedAt": now_iso(),
            "error": None,
        }
        self.kv.set(job["id"], job)
        return job

    def cancel(self, problem_id: str) -> bool:
        return self.kv.delete(job_key(problem_id))

    def pending(self) -> List[Dict[str, Any]]:
        return [j for j in self.kv.get_by_prefix(JOB_PREFIX) if j.get("status") in ACTIVE]

    # ───────── 실행 ─────────
    def run_due(self, now: Optional[float] = None) -> int:
        """dueAt이 지난 작업을 처리하고, 종료 상태에 도달한 작업 수를 돌려준다."""
        now = time.time() if now is None else now
        finished = 0
        for job in self.pending():
            if float(job.get("dueAt") or 0) > now:
                continue
            claimed = self._claim(job["id"], now)
            if claimed and self._process(claimed, now):
                finished += 1
        return finished

    def _claim(self, key: str, now: float) -> Optional[Dict[str, Any]]:
        def fn(job):
            if not job or job.get("status") not in ACTIVE or float(job.get("dueAt") or 0) > now:
                return None
            job["status"] = "processing"
            job["attempts"] = int(job.get("attempts") or 0) + 1
            job["dueAt"] = now + self.lease_seconds
            job["updatedAt"] = now_iso()
            return job

        return self.kv.mutate(key, fn)

    def _process(self, job: Dict[str, Any], now: float) -> bool:
        problem_id = job["problemId"]
        raw = self.kv.get(problem_id)
        if raw is None:
            log.info("job %s: problem deleted, dropping job", job["id"])
            self.kv.delete(job["id"])
            return True

        problem = Problem.model_validate(raw)
        if problem.status != "processing":
            self.kv.delete(job["id"])
            return True

        try:
            video_url = self.generator.generate(problem)
        except Exception as e:
            log.exception("job %s: video generation failed (attempt %s)", job["id"], job["attempts"])
            if job["attempts"] >= self.max_attempts:
                self._finish_problem(problem_id, error=str(e) or e.__class__.__name__)
                self._set_job(job["id"], status="failed", error=str(e))
                return True
            self._set_job(job["id"], status="queued", dueAt=now + self.retry_delay, error=str(e))
            return False

        self._finish_problem(problem_id, video_url=video_url)
        self.kv.delete(job["id"])
        log.info("job %s: completed", job["id"])
        return True

    def _finish_problem(self, problem_id: str, video_url: Optional[str] = None, error: Optional[str] = None) -> None:
        def fn(raw):
            if raw is None:
                return None
            p = Problem.model_validate(raw)
            if p.status != "processing":
                return None
            p = p.complete(video_url) if video_url else p.fail(error or "video generation failed")
            return p.model_dump()

        updated = self.kv.mutate(problem_id, fn)
        if updated and updated.get("userId"):
            history.sync_problem(self.kv, updated["userId"], Problem.model_validate(updated))

    def _set_job(self, key: str, **changes: Any) -> None:
        def fn(job):
            if job is None:
                return None
            job.update(changes)
            job["updatedAt"] = now_iso()
            return job

        self.kv.mutate(key, fn)

    # ───────── 백그라운드 루프 ─────────
    def start(self, interval: float = 1.0) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, args=(interval,), name="manion-jobs", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    def run_forever(self, interval: float = 1.0) -> None:
        log.info("job runner started (interval=%ss)", interval)
        while not self._stop.wait(interval):
            try:
                self.run_due()
            except Exception:
                log.exception("job runner iteration failed")
