"""
Thumbnail job queue and cooperative scheduler.

One job runs at a time, on the same thread as the request-serving loop. Each
pipeline stage is a generator; the scheduler advances the active job by one
slice (up to the stage's next `yield`) per call to dequeue_and_run_one_step(),
and the serving loop handles pending requests between slices.

Job lifecycle:
    QUEUED -> NORMALIZING -> BOUNDS_SCAN -> RENDERING -> ENCODING -> DONE | FAILED
"""

import logging
from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Callable, Dict, Generator, Iterator, Optional

from meshfolio.config import Config, get_config
from meshfolio.core.errors import MeshError, StorageFailure, UnexpectedError
from meshfolio.core.paths import canonicalize_path, is_mesh_path
from meshfolio.core.storage import LocalStorage
from meshfolio.core.thumbnails import find_thumbnail, thumbnail_path
from meshfolio.indexer.bounds import scan_bounds
from meshfolio.indexer.normalize import normalize_mesh, TEMP_SUFFIX
from meshfolio.indexer.png import write_png
from meshfolio.indexer.thumbnails import Rasterizer

logger = logging.getLogger(__name__)


class JobState(Enum):
    QUEUED = 'queued'
    NORMALIZING = 'normalizing'
    BOUNDS_SCAN = 'bounds_scan'
    RENDERING = 'rendering'
    ENCODING = 'encoding'
    DONE = 'done'
    FAILED = 'failed'


# Slice of the overall 0-100 job percentage owned by each stage
STAGE_RANGES = {
    JobState.NORMALIZING: (0, 20),
    JobState.BOUNDS_SCAN: (20, 35),
    JobState.RENDERING: (35, 85),
    JobState.ENCODING: (85, 100),
}

STAGE_LABELS = {
    JobState.NORMALIZING: 'Normalizing STL',
    JobState.BOUNDS_SCAN: 'Scanning bounds',
    JobState.RENDERING: 'Rendering',
    JobState.ENCODING: 'Encoding PNG',
}


@dataclass
class Job:
    mesh_path: str
    thumb_path: str
    state: JobState = JobState.QUEUED
    triangles: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class ProgressRecord:
    busy: bool = False
    task: str = ''
    current_file: str = ''
    percent: int = 0
    status: str = ''

    def to_dict(self) -> Dict:
        return asdict(self)


IDLE = ProgressRecord()


class JobQueue:
    """Bounded circular FIFO of canonical mesh paths."""

    def __init__(self, capacity: int = 128):
        if capacity < 1:
            raise ValueError("Queue capacity must be at least 1")
        self.capacity = capacity
        self._slots = [None] * capacity
        self._head = 0
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[str]:
        for i in range(self._size):
            yield self._slots[(self._head + i) % self.capacity]

    def __contains__(self, path: str) -> bool:
        return any(p == path for p in self)

    @property
    def full(self) -> bool:
        return self._size == self.capacity

    def push(self, path: str) -> bool:
        """Append path; False (and nothing stored) when full."""
        if self.full:
            return False
        self._slots[(self._head + self._size) % self.capacity] = path
        self._size += 1
        return True

    def pop(self) -> Optional[str]:
        if self._size == 0:
            return None
        path = self._slots[self._head]
        self._slots[self._head] = None
        self._head = (self._head + 1) % self.capacity
        self._size -= 1
        return path


class ThumbnailScheduler:
    """
    Drives queued thumbnail jobs one cooperative slice at a time.

    Owns the job queue, the single reusable Rasterizer/FrameBuffer and the
    progress record. Readers only ever see immutable ProgressRecord snapshots.
    """

    def __init__(
        self,
        storage: LocalStorage,
        config: Optional[Config] = None,
        rasterizer: Optional[Rasterizer] = None,
        yield_hook: Optional[Callable[[], None]] = None
    ):
        self.storage = storage
        self.config = config or get_config()
        self.queue = JobQueue(self.config.QUEUE_CAPACITY)
        self.rasterizer = rasterizer or Rasterizer()
        self.yield_hook = yield_hook

        self.stats = {'completed': 0, 'failed': 0, 'dropped': 0}

        self._job: Optional[Job] = None
        self._task: Optional[Generator] = None
        self._progress = IDLE

    # ── producer side ───────────────────────────────────────────────────────

    def enqueue(self, path: str) -> bool:
        """
        Canonicalize and queue a mesh path.

        Best effort: when the queue is full the path is dropped (logged only).
        """
        canonical = canonicalize_path(path, self.config.MESH_DIR)
        if self.queue.push(canonical):
            logger.debug(f"Queued {canonical} ({len(self.queue)}/{self.queue.capacity})")
            return True

        self.stats['dropped'] += 1
        logger.warning(f"Thumbnail queue full, dropped {canonical}")
        return False

    def enqueue_missing(self) -> Dict[str, int]:
        """Queue every mesh under MESH_DIR that has no thumbnail yet."""
        counts = {'found': 0, 'cached': 0, 'queued': 0, 'skipped': 0, 'dropped': 0}

        for path in self.storage.iter_files(self.config.MESH_DIR):
            if not is_mesh_path(path):
                continue
            counts['found'] += 1

            if find_thumbnail(self.storage, path, self.config.THUMBNAIL_DIR, self.config.MESH_DIR):
                counts['cached'] += 1
            elif path in self.queue or (self._job and self._job.mesh_path == path):
                counts['skipped'] += 1
            elif self.enqueue(path):
                counts['queued'] += 1
            else:
                counts['dropped'] += 1

        logger.info(f"Thumbnail scan: {counts}")
        return counts

    # ── consumer side ───────────────────────────────────────────────────────

    @property
    def busy(self) -> bool:
        return self._task is not None

    @property
    def current_job(self) -> Optional[Job]:
        return self._job

    def snapshot(self) -> ProgressRecord:
        return self._progress

    def dequeue_and_run_one_step(self):
        """Start the next job if idle, then advance the active job one slice."""
        if self._task is None:
            path = self.queue.pop()
            if path is None:
                return
            self._job = Job(
                mesh_path=path,
                thumb_path=thumbnail_path(path, self.config.THUMBNAIL_DIR, self.config.MESH_DIR)
            )
            self._task = self._run_job(self._job)

        try:
            next(self._task)
        except StopIteration:
            self._task = None
            self._job = None
            self._progress = IDLE

    def drain(self, max_steps: Optional[int] = None) -> int:
        """
        Run until the queue is empty and no job is active.

        Calls yield_hook after every slice. Returns the number of slices run.
        """
        steps = 0
        while self._task is not None or len(self.queue):
            self.dequeue_and_run_one_step()
            steps += 1
            if self.yield_hook:
                self.yield_hook()
            if max_steps is not None and steps >= max_steps:
                break
        return steps

    # ── job driver ──────────────────────────────────────────────────────────

    def _publish(self, **changes):
        self._progress = replace(self._progress, **changes)

    def _run_job(self, job: Job) -> Generator[None, None, None]:
        cfg = self.config
        self._progress = ProgressRecord(busy=True, current_file=job.mesh_path, status='Starting')
        logger.info(f"Thumbnail job started: {job.mesh_path}")

        try:
            job.triangles = yield from self._stage(
                job, JobState.NORMALIZING,
                normalize_mesh(self.storage, job.mesh_path, cfg.NORMALIZE_YIELD_LINES)
            )
            bounds = yield from self._stage(
                job, JobState.BOUNDS_SCAN,
                scan_bounds(self.storage, job.mesh_path, cfg.SCAN_BATCH_RECORDS)
            )
            framebuffer = yield from self._stage(
                job, JobState.RENDERING,
                self.rasterizer.render(self.storage, job.mesh_path, bounds, cfg.RENDER_BATCH_TRIANGLES)
            )
            yield from self._stage(
                job, JobState.ENCODING,
                write_png(self.storage, framebuffer, job.thumb_path, cfg.ENCODE_ROWS_PER_SLICE)
            )
        except MeshError as e:
            self._fail(job, e)
        except OSError as e:
            self._fail(job, StorageFailure(job.mesh_path, str(e)))
        except Exception as e:
            logger.exception(f"Unexpected error rendering {job.mesh_path}")
            self._fail(job, UnexpectedError(job.mesh_path, f"{type(e).__name__}: {e}"))
        else:
            job.state = JobState.DONE
            self.stats['completed'] += 1
            self._publish(percent=100, status=f"Done: {job.thumb_path}")
            logger.info(f"✓ {job.mesh_path} -> {job.thumb_path} ({job.triangles} triangles)")

        # Leave the final status visible for one slice before going idle
        yield

    def _stage(self, job: Job, state: JobState, stage: Generator):
        """Run one stage generator, mapping its fractions into the job percent."""
        job.state = state
        lo, hi = STAGE_RANGES[state]
        label = STAGE_LABELS[state]
        self._publish(task=label, percent=lo, status=f"{label}...")

        while True:
            try:
                fraction = next(stage)
            except StopIteration as done:
                self._publish(percent=hi)
                return done.value
            self._publish(percent=int(lo + (hi - lo) * min(max(fraction, 0.0), 1.0)))
            yield

    def _fail(self, job: Job, error: MeshError):
        failed_in = job.state
        job.state = JobState.FAILED
        job.error = f"{error.kind.value}: {error.detail}"
        self.stats['failed'] += 1

        for tmp in (job.mesh_path + TEMP_SUFFIX, job.thumb_path + TEMP_SUFFIX):
            try:
                if self.storage.remove(tmp):
                    logger.debug(f"Removed leftover {tmp}")
            except StorageFailure as cleanup_error:
                logger.error(f"Could not remove {tmp}: {cleanup_error}")

        self._publish(status=f"Failed: {job.error}")
        logger.warning(f"✗ {job.mesh_path} failed during {failed_in.value}: {job.error}")
