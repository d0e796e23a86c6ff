"""Per-task artifact layout on local disk.

    <root>/tasks/<task_id>/odm_orthophoto.tif
    <root>/tasks/<task_id>/spectral/{rgb,ndvi,infrared,vari}.png
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import zipfile
from collections.abc import AsyncIterator
from pathlib import Path

from src.orthomap.domain.exceptions import DecodeError, ExternalJobError
from src.orthomap.domain.models.spectral_index import SpectralIndex

logger = logging.getLogger(__name__)

RASTER_NAME = "odm_orthophoto.tif"
ORTHOPHOTO_ENTRY = "odm_orthophoto/odm_orthophoto.tif"
ARCHIVE_NAME = "temp.zip"
SPECTRAL_DIR = "spectral"


class ArtifactStore:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def task_dir(self, task_id: str) -> Path:
        return self._root / "tasks" / task_id

    def raster_path(self, task_id: str) -> Path:
        return self.task_dir(task_id) / RASTER_NAME

    def spectral_dir(self, task_id: str) -> Path:
        return self.task_dir(task_id) / SPECTRAL_DIR

    def image_path(self, task_id: str, index: SpectralIndex) -> Path:
        return self.spectral_dir(task_id) / f"{index.artifact_name}.png"

    def stage_raster(self, task_id: str, source: str | Path) -> Path:
        """Copy a user-supplied raster into the task directory."""
        target = self.raster_path(task_id)
        target.parent.mkdir(parents=True, exist_ok=True)
        if Path(source).resolve() != target.resolve():
            shutil.copyfile(source, target)
        return target

    async def save_archive(self, task_id: str, chunks: AsyncIterator[bytes]) -> Path:
        """Write a streamed result archive next to the task's artifacts."""
        target = self.task_dir(task_id) / ARCHIVE_NAME
        # Disk writes stay off the event loop.
        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        handle = await asyncio.to_thread(open, target, "wb")
        try:
            async for chunk in chunks:
                await asyncio.to_thread(handle.write, chunk)
        finally:
            await asyncio.to_thread(handle.close)
        return target

    def extract_orthophoto(self, task_id: str, archive_path: str | Path) -> Path:
        """Pull the orthophoto entry out of a result archive and drop the archive."""
        target = self.raster_path(task_id)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            with zipfile.ZipFile(archive_path) as archive:
                try:
                    entry = archive.getinfo(ORTHOPHOTO_ENTRY)
                except KeyError as exc:
                    raise ExternalJobError(
                        None, f"Result archive has no {ORTHOPHOTO_ENTRY} entry"
                    ) from exc
                with archive.open(entry) as source, open(target, "wb") as sink:
                    shutil.copyfileobj(source, sink)
        except zipfile.BadZipFile as exc:
            raise DecodeError(f"Result archive is not a valid zip file: {exc}") from exc
        finally:
            Path(archive_path).unlink(missing_ok=True)
        return target

    def discard_spectral(self, task_id: str) -> None:
        self._remove_tree(self.spectral_dir(task_id), task_id)

    def remove_task(self, task_id: str, extra_paths: list[str] | None = None) -> None:
        """Best-effort deletion of everything a task produced."""
        for path in extra_paths or []:
            try:
                Path(path).unlink(missing_ok=True)
            except OSError as exc:
                logger.error(
                    "Failed to delete task artifact",
                    extra={"task_id": task_id, "path": path, "error": str(exc)},
                )
        self._remove_tree(self.task_dir(task_id), task_id)

    @staticmethod
    def _remove_tree(path: Path, task_id: str) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.error(
                "Failed to delete task artifacts",
                extra={"task_id": task_id, "path": str(path), "error": str(exc)},
            )
