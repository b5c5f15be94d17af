"""Build runner.

Runs the fixed ``npm install`` / ``npm run build`` recipe inside a working
copy, streaming the combined output to the deployment log.
"""

import json
from pathlib import Path
from typing import Any

from pushdeploy.config import Settings, get_settings
from pushdeploy.core.events import LogSink
from pushdeploy.core.exceptions import BuildError
from pushdeploy.utils.logging import get_logger
from pushdeploy.utils.process import run_streaming

MANIFEST_NAME = "package.json"


def read_manifest(workdir: Path) -> dict[str, Any]:
    """Load ``package.json`` from the working copy root.

    Raises:
        BuildError: If the manifest is missing or not a JSON object
    """
    manifest_path = workdir / MANIFEST_NAME
    if not manifest_path.is_file():
        raise BuildError(f"Missing {MANIFEST_NAME} - cannot build")

    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise BuildError(f"Invalid {MANIFEST_NAME}: {e}") from e

    if not isinstance(manifest, dict):
        raise BuildError(f"Invalid {MANIFEST_NAME}: expected a JSON object")

    return manifest


def manifest_scripts(manifest: dict[str, Any]) -> dict[str, str]:
    scripts = manifest.get("scripts")
    return scripts if isinstance(scripts, dict) else {}


class BuildRunner:
    """Runs install and build commands in a working directory."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.logger = get_logger("builder")

    @property
    def npm(self) -> str:
        return self.settings.npm_command

    async def run(self, workdir: Path, on_log: LogSink) -> None:
        """Install dependencies, then build.

        Raises:
            BuildError: If the manifest is missing or a command fails
        """
        read_manifest(workdir)

        await on_log("Installing dependencies...")
        await self.run_command([self.npm, "install"], workdir, on_log)
        await on_log("Dependencies installed successfully")

        await on_log("Building project...")
        await self.run_script(workdir, "build", on_log)
        await on_log("Project built successfully")

    async def run_script(self, workdir: Path, script: str, on_log: LogSink) -> None:
        """Run ``npm run <script>``."""
        await self.run_command([self.npm, "run", script], workdir, on_log)

    async def run_command(self, cmd: list[str], workdir: Path, on_log: LogSink) -> None:
        """Run one command, echoing it first.

        A non-zero exit status is fatal; output on stderr alone is not.
        """
        display = " ".join(cmd)
        await on_log(f"$ {display}")
        self.logger.info("builder.command.started", cmd=display, cwd=str(workdir))

        try:
            returncode = await run_streaming(cmd, workdir, on_log)
        except FileNotFoundError as e:
            raise BuildError(f"Command not found: {cmd[0]}", command=display) from e

        self.logger.info("builder.command.finished", cmd=display, returncode=returncode)

        if returncode != 0:
            await on_log(f"Error: command exited with code {returncode}")
            raise BuildError(
                f"Command failed with exit code {returncode}: {display}",
                command=display,
                exit_code=returncode,
            )
