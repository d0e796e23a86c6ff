"""Task lifecycle orchestration.

A task moves PENDING -> PROCESSING -> COMPLETED | FAILED. Capture sets go
through the external reconstruction job and a per-task polling loop;
pre-built rasters go straight to finalization. Every write to a task is a
read-modify-write under that task's lock, and every write re-checks that
the task is still PROCESSING for the same external job, so a late
reconciliation can never overwrite a terminal status.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from functools import partial
from pathlib import Path

import inject

from src.orthomap.application.polling import PollScheduler
from src.orthomap.application.products import ProductBuilder
from src.orthomap.domain.exceptions import (
    ExternalCommunicationError,
    ExternalJobError,
    InvalidStateError,
    PersistenceError,
    TaskNotFoundError,
    UploadError,
)
from src.orthomap.domain.models.external_job import ExternalJobStatus
from src.orthomap.domain.models.input_kind import InputKind
from src.orthomap.domain.models.payloads import InputFile
from src.orthomap.domain.models.task import Task
from src.orthomap.domain.models.task_status import TaskStatus
from src.orthomap.domain.repositories import (
    ExternalJobClient,
    NotificationSink,
    TaskRepository,
)
from src.orthomap.infrastructure.artifacts import ArtifactStore
from src.setup.pipeline_config import PipelineSettings, get_pipeline_settings

logger = logging.getLogger(__name__)

# Returning False from a mutation means "stale, do not write".
Mutation = Callable[[Task], bool | None]


class TaskOrchestrator:
    """Sole writer of task state; drives tasks from submission to a terminal status."""

    def __init__(
        self,
        storage: TaskRepository | None = None,
        notifier: NotificationSink | None = None,
        job_client: ExternalJobClient | None = None,
        *,
        artifacts: ArtifactStore | None = None,
        products: ProductBuilder | None = None,
        settings: PipelineSettings | None = None,
    ) -> None:
        self._storage = storage or inject.instance(TaskRepository)
        self._sink = notifier or inject.instance(NotificationSink)
        self._jobs = job_client or inject.instance(ExternalJobClient)
        self._artifacts = artifacts or inject.instance(ArtifactStore)
        self._products = products or inject.instance(ProductBuilder)
        self._settings = settings or get_pipeline_settings()
        self._poller = PollScheduler()
        self._locks: dict[str, asyncio.Lock] = {}
        self._finalizing: dict[str, asyncio.Task[None]] = {}
        self._poll_errors: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def submit(self, task_id: str, inputs: Sequence[InputFile]) -> Task:
        """Start processing a PENDING task.

        Capture sets return as soon as the external job is committed, with the
        task PROCESSING. A pre-built raster is finalized before returning.
        """
        task = await self._storage.get(task_id)
        if task.status is not TaskStatus.PENDING:
            raise InvalidStateError(task_id, task.status, "submit")
        self._validate_inputs(task, inputs)

        if task.input_kind.uses_external_job:
            return await self._submit_capture_set(task, inputs)
        return await self._submit_raster(task, inputs[0])

    async def get_status(self, task_id: str) -> Task:
        """Return the task, first reconciling a PROCESSING task with its external job."""
        task = await self._storage.get(task_id)
        job_id = task.external_job_id
        if task.status is not TaskStatus.PROCESSING or job_id is None:
            return task
        if task_id in self._finalizing:
            return task

        try:
            status = await self._jobs.get_status(job_id)
        except (ExternalCommunicationError, ExternalJobError) as exc:
            logger.warning(
                "Status reconciliation skipped",
                extra={"task_id": task_id, "job_id": job_id, "error": str(exc)},
            )
            return task

        await self._apply_external_status(task_id, status)
        return await self._storage.get(task_id)

    async def resubmit(self, task_id: str) -> Task:
        """Reset a COMPLETED or FAILED task to PENDING so it can be submitted again."""
        previous: list[str] = []

        def reset(task: Task) -> None:
            previous.extend(_artifact_paths(task))
            task.reset()

        task = await self._mutate(task_id, reset)
        await asyncio.to_thread(self._artifacts.remove_task, task_id, previous)
        await self._notify(self._sink.status_changed(task_id, TaskStatus.PENDING))
        logger.info("Task reset for re-submission", extra={"task_id": task_id})
        return task

    async def remove(self, task_id: str) -> None:
        """Stop all work for a task and delete its artifacts before the record goes away."""
        task = await self._storage.get(task_id)
        self._poller.cancel(task_id)

        finalization = self._finalizing.get(task_id)
        if finalization is not None:
            # Finalization is not cancellable; let it settle before deleting files.
            await asyncio.wait({finalization})
            task = await self._storage.get(task_id)
        elif task.status is TaskStatus.PROCESSING and task.external_job_id:
            try:
                await self._jobs.cancel(task.external_job_id)
            except (ExternalCommunicationError, ExternalJobError) as exc:
                logger.warning(
                    "Could not cancel external job",
                    extra={"task_id": task_id, "job_id": task.external_job_id, "error": str(exc)},
                )

        await asyncio.to_thread(self._artifacts.remove_task, task_id, _artifact_paths(task))
        self._locks.pop(task_id, None)
        self._poll_errors.pop(task_id, None)
        logger.info("Task artifacts removed", extra={"task_id": task_id})

    async def shutdown(self) -> None:
        """Cancel every polling loop and wait for running finalizations."""
        await self._poller.cancel_all()
        if self._finalizing:
            await asyncio.wait(set(self._finalizing.values()))

    def is_polling(self, task_id: str) -> bool:
        return self._poller.is_polling(task_id)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_inputs(task: Task, inputs: Sequence[InputFile]) -> None:
        if not inputs:
            raise UploadError("No input files provided")
        if task.input_kind is InputKind.RASTER and len(inputs) != 1:
            raise UploadError(f"A raster task takes exactly one file, got {len(inputs)}")
        for item in inputs:
            if not item.path or not item.filename:
                raise UploadError(f"Invalid input file: {item.model_dump()}")
            if not Path(item.path).is_file():
                raise UploadError(f"Input file {item.path} does not exist")

    async def _submit_capture_set(self, task: Task, inputs: Sequence[InputFile]) -> Task:
        task_id = task.id
        await self._mutate(task_id, lambda t: t.start_processing())
        await self._notify(self._sink.status_changed(task_id, TaskStatus.PROCESSING))

        try:
            job_id = await self._jobs.create_job(task.name, task.options)
            await self._jobs.upload_inputs(job_id, inputs)
            await self._jobs.commit(job_id)
        except (ExternalCommunicationError, ExternalJobError, UploadError) as exc:
            await self._fail(task_id, f"Could not start external job: {exc}")
            raise

        try:
            task = await self._mutate(task_id, lambda t: t.assign_external_job(job_id))
        except (PersistenceError, TaskNotFoundError):
            await self._cancel_quietly(job_id)
            raise

        self._poller.start(
            task_id,
            partial(self._poll_tick, task_id, job_id),
            self._settings.POLL_INTERVAL_SECONDS,
        )
        logger.info(
            "Task submitted to external job",
            extra={"task_id": task_id, "job_id": job_id, "inputs": len(inputs)},
        )
        return task

    async def _submit_raster(self, task: Task, raster: InputFile) -> Task:
        task_id = task.id
        try:
            staged = await asyncio.to_thread(self._artifacts.stage_raster, task_id, raster.path)
        except OSError as exc:
            raise UploadError(f"Cannot store raster {raster.filename}: {exc}") from exc

        await self._mutate(task_id, lambda t: t.start_processing(source_raster_path=str(staged)))
        handle = self._start_finalization(task_id, raster_path=staged)
        await self._notify(self._sink.status_changed(task_id, TaskStatus.PROCESSING))
        logger.info("Raster task submitted", extra={"task_id": task_id, "raster": str(staged)})

        # A cancelled caller must not take the finalization down with it.
        await asyncio.shield(handle)
        return await self._storage.get(task_id)

    # ------------------------------------------------------------------
    # Polling and reconciliation
    # ------------------------------------------------------------------

    async def _poll_tick(self, task_id: str, job_id: str) -> bool:
        try:
            status = await self._jobs.get_status(job_id)
        except ExternalCommunicationError as exc:
            errors = self._poll_errors.get(task_id, 0) + 1
            self._poll_errors[task_id] = errors
            if errors <= self._settings.POLL_ERROR_TOLERANCE:
                logger.warning(
                    "External job unreachable, will retry",
                    extra={"task_id": task_id, "job_id": job_id, "errors": errors},
                )
                return True
            self._poll_errors.pop(task_id, None)
            await self._fail(task_id, f"Lost contact with external job: {exc}", job_id=job_id)
            return False
        except ExternalJobError as exc:
            await self._fail(task_id, str(exc), job_id=job_id)
            return False

        self._poll_errors.pop(task_id, None)
        try:
            return await self._apply_external_status(task_id, status)
        except PersistenceError as exc:
            logger.error(
                "Task store unavailable during poll",
                extra={"task_id": task_id, "job_id": job_id, "error": str(exc)},
            )
            return True
        except TaskNotFoundError:
            logger.warning("Polled task no longer exists", extra={"task_id": task_id})
            return False

    async def _apply_external_status(self, task_id: str, status: ExternalJobStatus) -> bool:
        """Map an external status onto the task; returns whether polling should go on."""
        job_id = status.job_id
        if status.is_completed:
            self._poller.cancel(task_id)
            await self._begin_finalization(task_id, job_id)
            return False

        if status.is_failed:
            self._poller.cancel(task_id)
            code = status.known_code.name if status.known_code else status.code
            detail = status.error_message or "no detail reported"
            error = ExternalJobError(job_id, f"External job {code}: {detail}")
            await self._fail(task_id, str(error), job_id=job_id)
            return False

        if not status.is_running:
            logger.warning(
                "Unknown external job status code",
                extra={"task_id": task_id, "job_id": job_id, "code": status.code},
            )
        await self._record_progress(task_id, job_id, status.progress)
        return True

    async def _record_progress(self, task_id: str, job_id: str, percent: float) -> None:
        current = True

        def record(task: Task) -> bool | None:
            nonlocal current
            if not _still_running(task, job_id):
                current = False
                return False
            if abs(percent - task.progress) < self._settings.PROGRESS_DELTA:
                return False
            task.record_progress(percent)
            return None

        await self._mutate(task_id, record)
        if current:
            await self._notify(self._sink.progress(task_id, percent))

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def _begin_finalization(self, task_id: str, job_id: str) -> None:
        async with self._lock(task_id):
            if task_id in self._finalizing:
                return
            task = await self._storage.get(task_id)
            if not _still_running(task, job_id):
                return
            self._start_finalization(task_id, job_id=job_id)

    def _start_finalization(
        self,
        task_id: str,
        *,
        job_id: str | None = None,
        raster_path: Path | None = None,
    ) -> asyncio.Task[None]:
        handle = asyncio.create_task(
            self._finalize(task_id, job_id=job_id, raster_path=raster_path),
            name=f"finalize:{task_id}",
        )
        self._finalizing[task_id] = handle
        handle.add_done_callback(partial(self._finalization_done, task_id))
        return handle

    def _finalization_done(self, task_id: str, handle: asyncio.Task[None]) -> None:
        if self._finalizing.get(task_id) is handle:
            self._finalizing.pop(task_id, None)

    async def _finalize(
        self,
        task_id: str,
        *,
        job_id: str | None = None,
        raster_path: Path | None = None,
    ) -> None:
        logger.info("Finalizing task", extra={"task_id": task_id, "job_id": job_id})
        stale = False

        try:
            if job_id is not None:
                archive = await self._artifacts.save_archive(
                    task_id, self._jobs.fetch_result_archive(job_id)
                )
                raster_path = await asyncio.to_thread(
                    self._artifacts.extract_orthophoto, task_id, archive
                )
            if raster_path is None:
                raise ValueError("No raster to finalize")

            products = await asyncio.to_thread(self._products.build, task_id, raster_path)

            def complete(task: Task) -> bool | None:
                nonlocal stale
                if not _still_running(task, job_id):
                    stale = True
                    return False
                task.complete(str(raster_path), products.spectral_images, products.bounding_box)
                return None

            await self._mutate(task_id, complete)
        except Exception as exc:
            logger.exception("Finalization failed", extra={"task_id": task_id, "job_id": job_id})
            await asyncio.to_thread(self._artifacts.discard_spectral, task_id)
            await self._fail(task_id, f"Finalization failed: {exc}", job_id=job_id)
            return

        if stale:
            logger.warning("Task left PROCESSING during finalization", extra={"task_id": task_id})
            return

        await self._notify(self._sink.status_changed(task_id, TaskStatus.COMPLETED))
        await self._notify(self._sink.completed(task_id, products.bounding_box))
        logger.info(
            "Task completed",
            extra={"task_id": task_id, "bounding_box": products.bounding_box.as_pairs()},
        )

    # ------------------------------------------------------------------
    # Writes and notifications
    # ------------------------------------------------------------------

    def _lock(self, task_id: str) -> asyncio.Lock:
        return self._locks.setdefault(task_id, asyncio.Lock())

    async def _mutate(self, task_id: str, mutation: Mutation) -> Task:
        async with self._lock(task_id):
            task = await self._storage.get(task_id)
            if mutation(task) is False:
                return task
            await self._storage.save(task)
            return task

    async def _fail(self, task_id: str, detail: str, *, job_id: str | None = None) -> None:
        failed = False

        def fail(task: Task) -> bool | None:
            nonlocal failed
            if not _still_running(task, job_id):
                return False
            task.fail(detail)
            failed = True
            return None

        try:
            await self._mutate(task_id, fail)
        except (PersistenceError, TaskNotFoundError) as exc:
            logger.error(
                "Could not record task failure",
                extra={"task_id": task_id, "detail": detail, "error": str(exc)},
            )
            return

        if failed:
            logger.warning("Task failed", extra={"task_id": task_id, "detail": detail})
            await self._notify(self._sink.status_changed(task_id, TaskStatus.FAILED))

    async def _notify(self, delivery: Awaitable[None]) -> None:
        try:
            await delivery
        except Exception as exc:
            logger.warning("Notification delivery failed", extra={"error": str(exc)})

    async def _cancel_quietly(self, job_id: str) -> None:
        try:
            await self._jobs.cancel(job_id)
        except (ExternalCommunicationError, ExternalJobError) as exc:
            logger.warning("Could not cancel external job", extra={"job_id": job_id, "error": str(exc)})


def _still_running(task: Task, job_id: str | None) -> bool:
    if task.status is not TaskStatus.PROCESSING:
        return False
    return job_id is None or task.external_job_id == job_id


def _artifact_paths(task: Task) -> list[str]:
    paths = [task.result_raster_path, task.source_raster_path, *task.spectral_images]
    return [path for path in paths if path]
