"""Shared test doubles and builders."""

import io
import json
import tarfile
from pathlib import Path

from pushdeploy.core.events import Event
from pushdeploy.models.deployment import RepoRef

# Stand-in for npm: `install` succeeds, `run <name>` executes ./<name>.sh
FAKE_NPM = """#!/bin/sh
echo "npm $*"
case "$1" in
  install)
    echo "added 0 packages"
    echo "npm warn deprecated something@1.0.0" >&2
    exit 0
    ;;
  run)
    if [ -f "$2.sh" ]; then
      sh "./$2.sh"
      exit $?
    fi
    echo "npm error Missing script: $2" >&2
    exit 1
    ;;
esac
exit 0
"""


class FakeFetcher:
    """Writes a fixed file tree instead of downloading a repository."""

    def __init__(self, files: dict[str, str] | None = None, error: Exception | None = None):
        self.files = files or {}
        self.error = error
        self.calls: list[tuple[RepoRef, Path]] = []

    async def fetch(self, ref: RepoRef, dest: Path, on_log) -> None:
        self.calls.append((ref, dest))
        dest.mkdir(parents=True, exist_ok=True)
        for relative, content in self.files.items():
            path = dest / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        if self.error:
            raise self.error


class LogRecorder:
    """Async log sink that keeps every line."""

    def __init__(self):
        self.lines: list[str] = []

    async def __call__(self, message: str) -> None:
        self.lines.append(message)


def package_json(**scripts: str) -> str:
    return json.dumps({"name": "site", "version": "1.0.0", "scripts": scripts})


def make_tarball(top_dir: str, files: dict[str, str]) -> bytes:
    """Build a gzipped tarball shaped like a GitHub archive download."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        root = tarfile.TarInfo(top_dir)
        root.type = tarfile.DIRTYPE
        root.mode = 0o755
        tar.addfile(root)
        for relative, content in files.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{top_dir}/{relative}")
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


async def drain(stream) -> list[Event]:
    return [event async for event in stream]
