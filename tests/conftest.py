from __future__ import annotations

import asyncio
import io
import zipfile
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import numpy as np
import pytest
import pytest_asyncio
import rasterio
from rasterio.transform import from_origin

from src.orthomap.application.orchestrator import TaskOrchestrator
from src.orthomap.application.products import ProductBuilder
from src.orthomap.domain.exceptions import ExternalCommunicationError
from src.orthomap.domain.models.external_job import ExternalJobCode, ExternalJobStatus
from src.orthomap.domain.models.geo import BoundingBox
from src.orthomap.domain.models.input_kind import InputKind
from src.orthomap.domain.models.payloads import InputFile, ProcessingOption
from src.orthomap.domain.models.task import Task
from src.orthomap.domain.models.task_status import TaskStatus
from src.orthomap.domain.repositories import ExternalJobClient, NotificationSink
from src.orthomap.domain.spectral.engine import SpectralDerivationEngine
from src.orthomap.infrastructure.artifacts import ORTHOPHOTO_ENTRY, ArtifactStore
from src.orthomap.infrastructure.memory.repositories import InMemoryTaskRepository
from src.orthomap.infrastructure.raster.reprojector import GeoReprojector
from src.setup.pipeline_config import PipelineSettings

UTM_17N = "EPSG:32617"


def write_geotiff(
    path: Path,
    bands: Sequence[np.ndarray],
    *,
    crs: str | None = UTM_17N,
    origin: tuple[float, float] = (500000.0, 4001000.0),
    pixel_size: float = 10.0,
) -> Path:
    """Write ``bands`` (each ``(height, width)``) as a GeoTIFF georeferenced at ``origin``."""
    stacked = np.stack([np.asarray(band) for band in bands])
    count, height, width = stacked.shape
    profile = {
        "driver": "GTiff",
        "width": width,
        "height": height,
        "count": count,
        "dtype": stacked.dtype.name,
        "transform": from_origin(origin[0], origin[1], pixel_size, pixel_size),
    }
    if crs is not None:
        profile["crs"] = crs
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(stacked)
    return path


def sample_bands(height: int = 4, width: int = 4) -> list[np.ndarray]:
    """Red, green, blue and NIR bands with a background corner pixel."""
    base = np.arange(1, height * width + 1, dtype=np.uint16).reshape(height, width)
    bands = [base * 10, base * 20, base * 5, base * 40]
    for band in bands:
        band[0, 0] = 0
    return bands


def orthophoto_archive(raster_path: Path, *, entry: str = ORTHOPHOTO_ENTRY) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.write(raster_path, entry)
        archive.writestr("odm_report/report.txt", "ignored")
    return buffer.getvalue()


def job_status(
    code: int, progress: float = 0.0, *, job_id: str = "job-1", error: str | None = None
) -> ExternalJobStatus:
    return ExternalJobStatus(job_id=job_id, code=code, progress=progress, error_message=error)


class RecordingSink(NotificationSink):
    def __init__(self) -> None:
        self.events: list[tuple[str, str, object]] = []

    async def progress(self, task_id: str, percent: float) -> None:
        self.events.append(("progress", task_id, percent))

    async def status_changed(self, task_id: str, status: TaskStatus) -> None:
        self.events.append(("status", task_id, status))

    async def completed(self, task_id: str, bounding_box: BoundingBox) -> None:
        self.events.append(("completed", task_id, bounding_box))

    def of(self, kind: str) -> list[object]:
        return [value for event_kind, _, value in self.events if event_kind == kind]


class FailingSink(NotificationSink):
    async def progress(self, task_id: str, percent: float) -> None:
        raise ConnectionError("sink down")

    async def status_changed(self, task_id: str, status: TaskStatus) -> None:
        raise ConnectionError("sink down")

    async def completed(self, task_id: str, bounding_box: BoundingBox) -> None:
        raise ConnectionError("sink down")


class FakeJobClient(ExternalJobClient):
    """Scripted job runner: ``statuses`` are served in order, the last one repeats.

    An exception in ``statuses`` is raised instead of returned. Setting ``hold``
    makes the next ``get_status`` call wait on it before reading its status.
    """

    def __init__(self, statuses: Sequence[object] = (), archive: bytes = b"") -> None:
        self.statuses = list(statuses)
        self.archive = archive
        self.hold: asyncio.Event | None = None
        self.create_error: Exception | None = None
        self.created: list[tuple[str | None, list[ProcessingOption]]] = []
        self.uploaded: list[list[str]] = []
        self.committed: list[str] = []
        self.cancelled: list[str] = []
        self.status_calls = 0
        self.archive_fetches = 0

    async def create_job(
        self, name: str | None = None, options: Sequence[ProcessingOption] = ()
    ) -> str:
        if self.create_error is not None:
            raise self.create_error
        self.created.append((name, list(options)))
        return "job-1"

    async def upload_inputs(self, job_id: str, files: Sequence[InputFile]) -> None:
        self.uploaded.append([item.filename for item in files])

    async def commit(self, job_id: str) -> None:
        self.committed.append(job_id)

    async def get_status(self, job_id: str) -> ExternalJobStatus:
        self.status_calls += 1
        if self.hold is not None:
            hold, self.hold = self.hold, None
            await hold.wait()
        if not self.statuses:
            return job_status(ExternalJobCode.QUEUED, job_id=job_id)
        current = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(current, Exception):
            raise current
        return current

    async def fetch_result_archive(self, job_id: str) -> AsyncIterator[bytes]:
        self.archive_fetches += 1
        for start in range(0, len(self.archive), 1024):
            yield self.archive[start : start + 1024]

    async def cancel(self, job_id: str) -> None:
        self.cancelled.append(job_id)


def unreachable() -> ExternalCommunicationError:
    return ExternalCommunicationError("fetch job status", "connection refused")


async def wait_for_status(
    storage: InMemoryTaskRepository,
    task_id: str,
    *statuses: TaskStatus,
    timeout: float = 5.0,
) -> Task:
    """Poll the store directly until the task reaches one of ``statuses``."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        task = await storage.get(task_id)
        if task.status in statuses:
            return task
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"task stayed {task.status.value}, expected {statuses}")
        await asyncio.sleep(0.01)


@pytest.fixture
def storage() -> InMemoryTaskRepository:
    return InMemoryTaskRepository()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def job_client() -> FakeJobClient:
    return FakeJobClient()


@pytest.fixture
def artifacts(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def pipeline_settings() -> PipelineSettings:
    return PipelineSettings(
        POLL_INTERVAL_SECONDS=0.01,
        POLL_ERROR_TOLERANCE=0,
        PROGRESS_DELTA=1.0,
        DEFAULT_SOURCE_CRS=None,
        SPECTRAL_WORKERS=1,
    )


@pytest.fixture
def orthophoto(tmp_path: Path) -> Path:
    return write_geotiff(tmp_path / "orthophoto.tif", sample_bands())


@pytest.fixture
def captures(tmp_path: Path) -> list[InputFile]:
    files = []
    for number in range(3):
        path = tmp_path / f"DJI_{number:04d}.JPG"
        path.write_bytes(b"\xff\xd8\xff" + bytes([number]) * 32)
        files.append(InputFile(path=str(path), filename=path.name, content_type="image/jpeg"))
    return files


@pytest_asyncio.fixture
async def orchestrator(
    storage: InMemoryTaskRepository,
    sink: RecordingSink,
    job_client: FakeJobClient,
    artifacts: ArtifactStore,
    pipeline_settings: PipelineSettings,
) -> AsyncIterator[TaskOrchestrator]:
    products = ProductBuilder(artifacts, SpectralDerivationEngine(), GeoReprojector())
    orchestrator = TaskOrchestrator(
        storage,
        sink,
        job_client,
        artifacts=artifacts,
        products=products,
        settings=pipeline_settings,
    )
    yield orchestrator
    await orchestrator.shutdown()


async def seed_task(
    storage: InMemoryTaskRepository,
    task_id: str = "task-1",
    *,
    input_kind: InputKind = InputKind.CAPTURE_SET,
) -> Task:
    task = Task(
        id=task_id,
        project_id="project-1",
        name="North field",
        input_kind=input_kind,
        options=[ProcessingOption(name="dsm", value=True)],
    )
    await storage.save(task)
    return task
