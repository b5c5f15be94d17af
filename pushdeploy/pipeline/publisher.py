"""Publisher.

Uploads every file under the artifact directory to object storage at
``<deployment-id>/<relative path>``.
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Iterator

from pushdeploy.core.events import LogSink
from pushdeploy.core.exceptions import PublishError, StorageConfigurationError
from pushdeploy.services.storage import ObjectStorage
from pushdeploy.utils.logging import get_logger

logger = get_logger("publisher")

DEFAULT_CONTENT_TYPE = "application/octet-stream"

CONTENT_TYPES: dict[str, str] = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".txt": "text/plain",
    ".xml": "application/xml",
    ".pdf": "application/pdf",
    ".ttf": "font/ttf",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
}


def content_type_for(path: str | PurePath) -> str:
    """Content type for a file, from its extension alone."""
    return CONTENT_TYPES.get(PurePath(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def iter_files(root: Path) -> Iterator[Path]:
    """Yield every regular file below ``root``.

    Uses an explicit stack rather than recursion. Symlinked directories are
    not descended into.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        with os.scandir(current) as it:
            entries = sorted(it, key=lambda e: e.name)

        subdirs = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(Path(entry.path))
            elif entry.is_file():
                yield Path(entry.path)

        stack.extend(reversed(subdirs))


def list_files(root: Path) -> list[Path]:
    return list(iter_files(root))


@dataclass(frozen=True)
class ArtifactFile:
    """One file of the artifact tree."""

    path: Path
    relative_path: str  # always forward-slash separated
    content_type: str

    @classmethod
    def from_path(cls, root: Path, path: Path) -> "ArtifactFile":
        relative = path.relative_to(root).as_posix()
        return cls(path=path, relative_path=relative, content_type=content_type_for(path))

    def key(self, deployment_id: str) -> str:
        return f"{deployment_id}/{self.relative_path}"


class Publisher:
    """Uploads artifact directories to object storage."""

    def __init__(self, storage: ObjectStorage):
        self.storage = storage

    async def publish(self, artifact_dir: Path, deployment_id: str, on_log: LogSink) -> int:
        """Upload the artifact tree. Returns the number of files uploaded.

        Raises:
            PublishError: On the first failed upload; no further files are sent
            StorageConfigurationError: If storage rejects the credentials or bucket
        """
        uploaded = 0
        paths = await asyncio.to_thread(list_files, artifact_dir)

        for path in paths:
            artifact = ArtifactFile.from_path(artifact_dir, path)
            key = artifact.key(deployment_id)

            await on_log(f"Uploading: {artifact.relative_path}")

            try:
                body = await asyncio.to_thread(path.read_bytes)
                await self.storage.put_object(
                    key, body, artifact.content_type, public=True
                )
            except StorageConfigurationError:
                raise
            except Exception as e:
                logger.error("publisher.upload_failed", key=key, error=str(e))
                raise PublishError(key, str(e)) from e

            uploaded += 1

        logger.info(
            "publisher.completed",
            deployment_id=deployment_id,
            files=uploaded,
        )
        return uploaded
