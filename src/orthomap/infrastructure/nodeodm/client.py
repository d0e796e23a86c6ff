"""HTTP client for a NodeODM-compatible reconstruction job runner."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import ExitStack
from typing import Any

import httpx

from src.orthomap.domain.exceptions import (
    ExternalCommunicationError,
    ExternalJobError,
    UploadError,
)
from src.orthomap.domain.models.external_job import ExternalJobStatus
from src.orthomap.domain.models.payloads import InputFile, ProcessingOption
from src.orthomap.domain.repositories import ExternalJobClient

logger = logging.getLogger(__name__)

RESULT_ARCHIVE = "all.zip"


class NodeOdmClient(ExternalJobClient):
    """
    Talks to NodeODM: init, upload, commit, poll info and download results.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        # Uploads and archive downloads can be arbitrarily large.
        self._transfer_timeout = httpx.Timeout(timeout, read=None, write=None)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def create_job(
        self, name: str | None = None, options: Sequence[ProcessingOption] = ()
    ) -> str:
        form: dict[str, str] = {}
        if name:
            form["name"] = name
        if options:
            form["options"] = json.dumps([option.model_dump() for option in options])
        data = await self._request_json("create job", "POST", "/task/new/init", data=form)
        job_id = data.get("uuid")
        if not job_id:
            raise ExternalCommunicationError("create job", f"response has no uuid: {data!r}")
        logger.info("Created external job", extra={"job_id": job_id})
        return str(job_id)

    async def upload_inputs(self, job_id: str, files: Sequence[InputFile]) -> None:
        with ExitStack() as stack:
            multipart = []
            for item in files:
                if not item.path or not item.filename:
                    raise UploadError(f"Invalid input file {item!r}")
                try:
                    handle = stack.enter_context(open(item.path, "rb"))
                except OSError as exc:
                    raise UploadError(f"Cannot read input file {item.path}: {exc}") from exc
                multipart.append(
                    ("images", (item.filename, handle, item.content_type or "application/octet-stream"))
                )
            await self._request_json(
                "upload inputs",
                "POST",
                f"/task/new/upload/{job_id}",
                files=multipart,
                timeout=self._transfer_timeout,
            )
        logger.info("Uploaded inputs", extra={"job_id": job_id, "count": len(files)})

    async def commit(self, job_id: str) -> None:
        await self._request_json("commit job", "POST", f"/task/new/commit/{job_id}")

    async def get_status(self, job_id: str) -> ExternalJobStatus:
        data = await self._request_json("fetch job status", "GET", f"/task/{job_id}/info")
        status = data.get("status")
        if not isinstance(status, dict) or "code" not in status:
            raise ExternalCommunicationError("fetch job status", f"malformed info: {data!r}")
        return ExternalJobStatus(
            job_id=job_id,
            code=int(status["code"]),
            progress=float(data.get("progress") or 0.0),
            error_message=status.get("errorMessage"),
        )

    async def fetch_result_archive(self, job_id: str) -> AsyncIterator[bytes]:
        url = f"/task/{job_id}/download/{RESULT_ARCHIVE}"
        try:
            async with self._client.stream(
                "GET", url, params=self._params(), timeout=self._transfer_timeout
            ) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            raise ExternalCommunicationError("fetch result archive", str(exc)) from exc

    async def cancel(self, job_id: str) -> None:
        await self._request_json("cancel job", "POST", "/task/cancel", data={"uuid": job_id})
        logger.info("Cancelled external job", extra={"job_id": job_id})

    async def close(self) -> None:
        await self._client.aclose()

    def _params(self) -> dict[str, str]:
        return {"token": self._token} if self._token else {}

    async def _request_json(self, operation: str, method: str, url: str, **kwargs: Any) -> dict:
        try:
            response = await self._client.request(method, url, params=self._params(), **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise ExternalCommunicationError(operation, str(exc)) from exc
        except ValueError as exc:
            raise ExternalCommunicationError(operation, f"invalid JSON body: {exc}") from exc

        if not isinstance(data, dict):
            raise ExternalCommunicationError(operation, f"unexpected body: {data!r}")
        # NodeODM reports rejected requests as 200 with an ``error`` field.
        if data.get("error"):
            raise ExternalJobError(None, f"{operation} rejected: {data['error']}")
        return data
