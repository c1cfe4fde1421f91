"""Background monetization rechecks with streamed progress."""
from __future__ import annotations

import datetime as dt
import json
import logging
import queue
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import config, database
from .monetization import check_channel

logger = logging.getLogger(__name__)


@dataclass
class RecheckJob:
    """A single batch of monetization checks for one user."""

    job_id: str
    user_id: str
    channels: List[Dict]
    started_at: float = field(default_factory=time.monotonic)
    completed: int = 0
    errors: int = 0
    monetized: int = 0
    queue: "queue.Queue[Optional[Dict]]" = field(default_factory=queue.Queue)
    lock: threading.Lock = field(default_factory=threading.Lock)
    done_event: threading.Event = field(default_factory=threading.Event)

    def push_update(self, payload: Dict) -> None:
        self.queue.put(payload)

    def mark_done(self) -> None:
        with self.lock:
            self._finish()

    def _finish(self) -> None:
        # Caller holds ``self.lock``.
        if self.done_event.is_set():
            return
        self.queue.put(None)
        self.done_event.set()

    @property
    def total(self) -> int:
        return len(self.channels)

    def update_counts(self, *, completed: bool, monetized: bool = False) -> None:
        with self.lock:
            if completed:
                self.completed += 1
                if monetized:
                    self.monetized += 1
            else:
                self.errors += 1
            # Progress must reach the queue before the done sentinel.
            self.push_update({"type": "progress", **self.summary()})
            if self.completed + self.errors >= self.total:
                self._finish()

    def summary(self) -> Dict:
        elapsed = time.monotonic() - self.started_at
        pending = max(0, self.total - self.completed - self.errors)
        return {
            "jobId": self.job_id,
            "total": self.total,
            "completed": self.completed,
            "errors": self.errors,
            "monetized": self.monetized,
            "pending": pending,
            "durationSeconds": round(elapsed, 2),
        }


class RecheckManager:
    """Runs monetization checks on a small pool so upstream load stays low."""

    def __init__(self, *, max_workers: Optional[int] = None):
        self._executor = ThreadPoolExecutor(max_workers=max_workers or config.RECHECK_MAX_WORKERS)
        self._jobs: Dict[str, RecheckJob] = {}
        self._lock = threading.Lock()

    def start_job(
        self,
        user_id: str,
        limit: Optional[int] = None,
        *,
        force_run: bool = False,
    ) -> RecheckJob:
        stale_after = None if force_run else dt.timedelta(hours=config.RECHECK_INTERVAL_HOURS)
        channels = database.get_channels_for_recheck(user_id, limit, stale_after=stale_after)
        job = RecheckJob(job_id=str(uuid.uuid4()), user_id=user_id, channels=channels)
        with self._lock:
            self._jobs[job.job_id] = job

        logger.info("Recheck job %s queued %d channels for user %s", job.job_id, job.total, user_id)
        if not channels:
            job.mark_done()
            return job

        job.push_update({"type": "progress", **job.summary()})
        for channel in channels:
            self._executor.submit(self._process_channel, job, channel)
        return job

    def _process_channel(self, job: RecheckJob, channel: Dict) -> None:
        channel_id = channel["channel_id"]
        job.push_update({"type": "channel", "channelId": channel_id, "status": "processing"})

        try:
            verdict = check_channel(channel_id)
            database.record_monetization(job.user_id, channel_id, verdict)
        except Exception as exc:
            reason = f"Unexpected error: {exc}"[:500]
            logger.exception("Recheck of channel %s failed", channel_id)
            job.push_update(
                {"type": "channel", "channelId": channel_id, "status": "error", "statusReason": reason}
            )
            job.update_counts(completed=False)
            return

        status = "unknown" if verdict.is_monetized is None else "completed"
        job.push_update(
            {"type": "channel", "channelId": channel_id, "status": status, **verdict.to_dict()}
        )
        job.update_counts(completed=True, monetized=bool(verdict.is_monetized))

    def get_job(self, job_id: str) -> Optional[RecheckJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def stream(self, job_id: str):
        job = self.get_job(job_id)
        if not job:
            raise KeyError(job_id)

        def event_stream():
            try:
                while True:
                    try:
                        item = job.queue.get(timeout=10)
                    except queue.Empty:
                        yield "data: {}\n\n"
                        continue
                    if item is None:
                        summary = job.summary()
                        summary["done"] = True
                        yield f"data: {json.dumps({'type': 'progress', **summary})}\n\n"
                        break
                    yield f"data: {json.dumps(item)}\n\n"
            finally:
                job.mark_done()
                with self._lock:
                    self._jobs.pop(job_id, None)

        return event_stream()

    def get_job_summaries(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            jobs = [job for job in self._jobs.values() if user_id is None or job.user_id == user_id]
        summaries = [job.summary() for job in jobs]
        return {
            "activeJobs": len(summaries),
            "pendingChannels": sum(int(summary.get("pending", 0)) for summary in summaries),
            "jobs": summaries,
        }


manager = RecheckManager()
