"""Job execution and site archive import/export.

Archive import is the side channel used both by directory units and by the
bootstrap protocol: the archive is uploaded to ``Impex/src/instance`` over
WebDAV and the system import job is run against it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from unitflow.errors import RemoteAccessError
from unitflow.remote.client import RemoteTarget, fault_message
from unitflow.utils.archive import create_archive_from_directory

logger = logging.getLogger(__name__)

SITE_ARCHIVE_IMPORT_JOB = "sfcc-site-archive-import"
SITE_ARCHIVE_EXPORT_JOB = "sfcc-site-archive-export"
IMPEX_INSTANCE_DIR = "Impex/src/instance"

FINISHED_STATES = {"finished", "aborted"}


@dataclass
class JobExecution:
    """Status snapshot of a job execution."""

    job_id: str
    id: str
    status: str = ""
    exit_code: str = ""
    exit_message: str = ""

    @property
    def finished(self) -> bool:
        return self.status in FINISHED_STATES

    @property
    def succeeded(self) -> bool:
        return self.status == "finished" and self.exit_code == "OK"

    @classmethod
    def from_response(cls, job_id: str, data: dict[str, Any]) -> "JobExecution":
        exit_status = data.get("exit_status") or {}
        return cls(
            job_id=job_id,
            id=str(data.get("id", "")),
            status=str(data.get("execution_status", "")),
            exit_code=str(exit_status.get("code", "")),
            exit_message=str(exit_status.get("message", "")),
        )


async def execute_job(
    target: RemoteTarget,
    job_id: str,
    parameters: list[dict[str, str]] | None = None,
    body: dict[str, Any] | None = None,
) -> JobExecution:
    """Start a job execution."""
    payload = body if body is not None else ({"parameters": parameters} if parameters else {})
    resp = await target.data_request("POST", f"/jobs/{job_id}/executions", json=payload)
    if resp.status_code not in (200, 202):
        raise RemoteAccessError(
            fault_message(resp, f"Unable to execute job {job_id}"),
            status=resp.status_code,
        )
    execution = JobExecution.from_response(job_id, resp.json())
    logger.debug("Job %s started (execution %s)", job_id, execution.id)
    return execution


async def wait_for_job(
    target: RemoteTarget,
    job_id: str,
    execution_id: str,
    timeout: float | None = None,
) -> JobExecution:
    """Poll a job execution until it finishes. Raises if it did not end OK."""
    start = time.monotonic()
    while True:
        resp = await target.data_request("GET", f"/jobs/{job_id}/executions/{execution_id}")
        if resp.status_code != 200:
            raise RemoteAccessError(
                fault_message(resp, f"Unable to read job execution {execution_id}"),
                status=resp.status_code,
            )
        execution = JobExecution.from_response(job_id, resp.json())
        if execution.finished:
            break
        if timeout is not None and time.monotonic() - start > timeout:
            raise RemoteAccessError(f"Timed out waiting for job {job_id} ({execution_id})")
        await asyncio.sleep(target.poll_interval)

    if not execution.succeeded:
        raise RemoteAccessError(
            f"Job {job_id} failed: {execution.exit_message or execution.exit_code or execution.status}"
        )
    return execution


async def site_archive_import(
    target: RemoteTarget,
    source: str | Path | bytes,
    archive_name: str | None = None,
) -> JobExecution:
    """Import a site archive from a directory or from zip bytes.

    Non-2xx answers raise :class:`RemoteAccessError` with the remote status,
    so callers can recognise a 403.
    """
    if isinstance(source, bytes):
        data = source
        name = archive_name or f"import-{int(time.time() * 1000)}"
    else:
        path = Path(source)
        name = archive_name or path.name
        data = create_archive_from_directory(path, name)

    zip_path = f"{IMPEX_INSTANCE_DIR}/{name}.zip"
    logger.debug("Uploading %s (%d bytes)", zip_path, len(data))
    resp = await target.webdav_request("PUT", zip_path, content=data)
    if resp.status_code not in (200, 201, 204):
        raise RemoteAccessError(f"Unable to upload archive {name}.zip", status=resp.status_code)

    try:
        execution = await execute_job(
            target, SITE_ARCHIVE_IMPORT_JOB, body={"file_name": f"{name}.zip"}
        )
        execution = await wait_for_job(target, SITE_ARCHIVE_IMPORT_JOB, execution.id)
    finally:
        await target.webdav_request("DELETE", zip_path)
    logger.debug("Imported %s", name)
    return execution


async def site_archive_export(
    target: RemoteTarget,
    data_units: dict[str, Any],
    archive_name: str | None = None,
) -> bytes:
    """Export the given data units and return the archive bytes."""
    name = archive_name or f"export-{datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S')}"
    execution = await execute_job(
        target,
        SITE_ARCHIVE_EXPORT_JOB,
        body={"data_units": data_units, "export_file": f"{name}.zip"},
    )
    await wait_for_job(target, SITE_ARCHIVE_EXPORT_JOB, execution.id)

    zip_path = f"{IMPEX_INSTANCE_DIR}/{name}.zip"
    resp = await target.webdav_request("GET", zip_path)
    if resp.status_code != 200:
        raise RemoteAccessError(f"No archive data returned from export {name}", status=resp.status_code)
    await target.webdav_request("DELETE", zip_path)
    return resp.content
