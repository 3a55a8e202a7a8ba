"""Code artifacts (cartridges) — discovery and upload to a code version."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from unitflow.errors import RemoteAccessError
from unitflow.remote.client import RemoteTarget, fault_message
from unitflow.utils.archive import create_archive_from_directory

logger = logging.getLogger(__name__)

# A directory holding this file is a deployable code artifact
ARTIFACT_MARKER = ".project"

SKIP_DIRS = {"node_modules", ".git", "__pycache__"}


@dataclass
class ArtifactMapping:
    """A local code artifact and its destination name on the instance."""

    name: str
    src: Path
    dest: str = ""

    def __post_init__(self) -> None:
        if not self.dest:
            self.dest = self.name


def find_artifacts(directory: str | Path) -> list[ArtifactMapping]:
    """Find code artifacts (directories containing ``.project``) below a directory."""
    root = Path(directory)
    if not root.is_dir():
        return []
    found = []
    for marker in sorted(root.rglob(ARTIFACT_MARKER)):
        if any(part in SKIP_DIRS for part in marker.relative_to(root).parts):
            continue
        if marker.is_file():
            found.append(ArtifactMapping(name=marker.parent.name, src=marker.parent.resolve()))
    return found


async def get_active_code_version(target: RemoteTarget) -> str | None:
    """Return the id of the active code version, or ``None``."""
    resp = await target.data_request("GET", "/code_versions")
    if resp.status_code != 200:
        raise RemoteAccessError(
            fault_message(resp, "Unable to list code versions"), status=resp.status_code
        )
    for version in resp.json().get("data", []):
        if version.get("active"):
            return version.get("id")
    return None


async def _resolve_code_version(target: RemoteTarget, code_version: str | None) -> str:
    version = code_version or target.config.code_version or await get_active_code_version(target)
    if not version:
        raise RemoteAccessError("Unable to determine active code version")
    return version


async def upload_artifacts(
    target: RemoteTarget,
    artifacts: list[ArtifactMapping],
    code_version: str | None = None,
) -> None:
    """Zip, upload and unzip each artifact into the code version."""
    version = await _resolve_code_version(target, code_version)
    for artifact in artifacts:
        zip_path = f"Cartridges/{version}/{artifact.dest}.zip"
        data = create_archive_from_directory(artifact.src, artifact.dest)
        logger.debug("Uploading %s to %s", artifact.dest, version)

        resp = await target.webdav_request("PUT", zip_path, content=data)
        if resp.status_code not in (200, 201, 204):
            raise RemoteAccessError(f"Unable to upload {artifact.dest}", status=resp.status_code)

        resp = await target.webdav_request("POST", zip_path, data={"method": "UNZIP"})
        if resp.status_code not in (200, 201, 204):
            raise RemoteAccessError(f"Unable to unzip {artifact.dest}", status=resp.status_code)

        await target.webdav_request("DELETE", zip_path)


async def delete_artifacts(
    target: RemoteTarget,
    artifacts: list[ArtifactMapping],
    code_version: str | None = None,
) -> None:
    version = await _resolve_code_version(target, code_version)
    for artifact in artifacts:
        resp = await target.webdav_request("DELETE", f"Cartridges/{version}/{artifact.dest}")
        if resp.status_code not in (200, 204, 404):
            raise RemoteAccessError(f"Unable to delete {artifact.dest}", status=resp.status_code)


async def reload_code_version(target: RemoteTarget, code_version: str | None = None) -> None:
    """Re-activate the code version so the instance picks up uploaded code.

    Toggles to another version and back when one exists.
    """
    version = await _resolve_code_version(target, code_version)
    sequence = [version]
    resp = await target.data_request("GET", "/code_versions")
    if resp.status_code == 200:
        others = [v.get("id") for v in resp.json().get("data", []) if v.get("id") != version]
        if others:
            sequence.insert(0, others[0])

    for version_id in sequence:
        resp = await target.data_request(
            "PATCH", f"/code_versions/{version_id}", json={"active": True}
        )
        if resp.status_code != 200:
            raise RemoteAccessError(
                fault_message(resp, f"Unable to activate code version {version_id}"),
                status=resp.status_code,
            )
