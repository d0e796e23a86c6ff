import random

import pytest

from src.orthomap.domain.exceptions import InvalidStateError
from src.orthomap.domain.models.geo import BoundingBox, LatLng
from src.orthomap.domain.models.input_kind import InputKind
from src.orthomap.domain.models.task import Task
from src.orthomap.domain.models.task_status import TaskStatus

BOX = BoundingBox(
    south_west=LatLng(lat=36.14, lng=-81.0),
    north_east=LatLng(lat=36.15, lng=-80.99),
)


def _task() -> Task:
    return Task(id="task-1", project_id="project-1", input_kind=InputKind.CAPTURE_SET)


def test_happy_path_populates_results_together() -> None:
    task = _task()
    task.start_processing()
    task.assign_external_job("job-1")
    task.record_progress(40)

    assert task.status is TaskStatus.PROCESSING
    assert task.spectral_images == []
    assert task.result_raster_path is None

    task.complete("/data/ortho.tif", ["/data/rgb.png", "/data/ndvi.png"], BOX)

    assert task.status is TaskStatus.COMPLETED
    assert task.result_raster_path == "/data/ortho.tif"
    assert task.spectral_images == ["/data/rgb.png", "/data/ndvi.png"]
    assert task.bounding_box == BOX
    assert task.progress == 100.0


def test_external_job_id_is_immutable() -> None:
    task = _task()
    with pytest.raises(InvalidStateError):
        task.assign_external_job("job-1")

    task.start_processing()
    task.assign_external_job("job-1")
    task.assign_external_job("job-1")
    with pytest.raises(InvalidStateError):
        task.assign_external_job("job-2")
    assert task.external_job_id == "job-1"


def test_progress_is_clamped() -> None:
    task = _task()
    task.start_processing()

    task.record_progress(140)
    assert task.progress == 100.0
    task.record_progress(-3)
    assert task.progress == 0.0


def test_terminal_states_need_reset() -> None:
    task = _task()
    task.start_processing()
    task.fail("boom")

    with pytest.raises(InvalidStateError):
        task.start_processing()
    with pytest.raises(InvalidStateError):
        task.complete("/x.tif", [], BOX)
    with pytest.raises(InvalidStateError):
        task.record_progress(10)

    task.reset()
    assert task.status is TaskStatus.PENDING
    assert task.error is None
    assert task.external_job_id is None


def test_reset_requires_terminal_state() -> None:
    task = _task()
    with pytest.raises(InvalidStateError):
        task.reset()
    task.start_processing()
    with pytest.raises(InvalidStateError):
        task.reset()


def test_bounding_box_pairs_are_lat_lng() -> None:
    assert BOX.as_pairs() == [[36.14, -81.0], [36.15, -80.99]]
    assert BoundingBox.from_pairs(BOX.as_pairs()) == BOX


_ORDER = {
    TaskStatus.PENDING: 0,
    TaskStatus.PROCESSING: 1,
    TaskStatus.COMPLETED: 2,
    TaskStatus.FAILED: 2,
}

_OPERATIONS = {
    "start": lambda task: task.start_processing(),
    "assign": lambda task: task.assign_external_job("job-1"),
    "progress": lambda task: task.record_progress(50),
    "complete": lambda task: task.complete("/x.tif", ["/rgb.png"], BOX),
    "fail": lambda task: task.fail("boom"),
    "reset": lambda task: task.reset(),
}


@pytest.mark.parametrize("seed", range(25))
def test_status_only_moves_forward_without_reset(seed: int) -> None:
    rng = random.Random(seed)
    task = _task()

    for _ in range(60):
        name = rng.choice(sorted(_OPERATIONS))
        before = task.status
        try:
            _OPERATIONS[name](task)
        except InvalidStateError:
            assert task.status is before
            continue

        after = task.status
        if name == "reset":
            assert before.is_terminal and after is TaskStatus.PENDING
        else:
            assert _ORDER[after] >= _ORDER[before]
            assert not (before.is_terminal and after is not before)
        if after is TaskStatus.COMPLETED:
            assert task.result_raster_path and task.spectral_images and task.bounding_box
        else:
            assert task.spectral_images == []
