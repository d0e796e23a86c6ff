from __future__ import annotations

from pathlib import Path

import pytest

from src.orthomap.domain.exceptions import DecodeError, ExternalJobError
from src.orthomap.domain.models.spectral_index import SpectralIndex
from src.orthomap.infrastructure.artifacts import ArtifactStore
from tests.conftest import orthophoto_archive


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


def test_layout_uses_lower_case_index_names(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path)

    assert store.raster_path("t1") == tmp_path / "tasks" / "t1" / "odm_orthophoto.tif"
    assert store.image_path("t1", SpectralIndex.INFRARED) == (
        tmp_path / "tasks" / "t1" / "spectral" / "infrared.png"
    )


@pytest.mark.asyncio
async def test_archive_is_saved_and_orthophoto_extracted(tmp_path: Path, orthophoto: Path) -> None:
    store = ArtifactStore(tmp_path / "store")
    payload = orthophoto_archive(orthophoto)

    archive = await store.save_archive("t1", _chunks(payload[:100], payload[100:]))
    raster = store.extract_orthophoto("t1", archive)

    assert raster == store.raster_path("t1")
    assert raster.read_bytes() == orthophoto.read_bytes()
    assert not archive.exists()
    assert sorted(path.name for path in store.task_dir("t1").iterdir()) == ["odm_orthophoto.tif"]


def test_missing_orthophoto_entry_raises_and_drops_archive(tmp_path: Path, orthophoto: Path) -> None:
    store = ArtifactStore(tmp_path)
    archive = tmp_path / "result.zip"
    archive.write_bytes(orthophoto_archive(orthophoto, entry="odm_dem/dsm.tif"))

    with pytest.raises(ExternalJobError):
        store.extract_orthophoto("t1", archive)
    assert not archive.exists()


def test_corrupt_archive_raises_decode_error(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path)
    archive = tmp_path / "result.zip"
    archive.write_bytes(b"PK but not really")

    with pytest.raises(DecodeError):
        store.extract_orthophoto("t1", archive)
    assert not archive.exists()


def test_stage_raster_copies_into_task_dir(tmp_path: Path, orthophoto: Path) -> None:
    store = ArtifactStore(tmp_path / "store")

    staged = store.stage_raster("t1", orthophoto)

    assert staged == store.raster_path("t1")
    assert staged.read_bytes() == orthophoto.read_bytes()
    assert orthophoto.exists()


def test_remove_task_is_best_effort(tmp_path: Path) -> None:
    store = ArtifactStore(tmp_path / "store")
    image = store.image_path("t1", SpectralIndex.RGB)
    image.parent.mkdir(parents=True)
    image.write_bytes(b"png")
    outside = tmp_path / "uploaded.tif"
    outside.write_bytes(b"tif")

    store.remove_task("t1", [str(outside), str(tmp_path / "never-existed.tif")])
    store.remove_task("t1")

    assert not store.task_dir("t1").exists()
    assert not outside.exists()


def test_discard_spectral_keeps_raster(tmp_path: Path, orthophoto: Path) -> None:
    store = ArtifactStore(tmp_path / "store")
    store.stage_raster("t1", orthophoto)
    image = store.image_path("t1", SpectralIndex.NDVI)
    image.parent.mkdir(parents=True)
    image.write_bytes(b"png")

    store.discard_spectral("t1")

    assert not store.spectral_dir("t1").exists()
    assert store.raster_path("t1").exists()


@pytest.mark.asyncio
async def test_archive_chunks_are_written_in_worker_threads(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    import asyncio

    real_to_thread = asyncio.to_thread
    offloaded: list[str] = []

    async def recording_to_thread(func, /, *args, **kwargs):
        offloaded.append(getattr(func, "__name__", repr(func)))
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
    store = ArtifactStore(tmp_path)

    archive = await store.save_archive("t1", _chunks(b"one", b"two", b"three"))

    assert archive.read_bytes() == b"onetwothree"
    assert offloaded.count("write") == 3
    assert "close" in offloaded
