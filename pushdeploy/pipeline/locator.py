"""Artifact locator.

Decides which directory of a built working copy holds the static site.
The policy is an ordered tuple of strategies; the first whose predicate
holds picks the directory.
"""

import asyncio
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable

from pushdeploy.core.events import LogSink
from pushdeploy.core.exceptions import ArtifactNotFoundError, BuildError
from pushdeploy.pipeline.builder import BuildRunner, manifest_scripts, read_manifest
from pushdeploy.utils.logging import get_logger

logger = get_logger("locator")

EXPORT_SCRIPT = "export"
EXPORT_DIR = "out"

FRAMEWORK_CONFIGS = ("next.config.js", "next.config.mjs", "next.config.ts")
FRAMEWORK_BUILD_DIR = ".next"

# Probed in order when nothing more specific applies
CONVENTIONAL_DIRS = ("build", "dist")


@dataclass
class ProjectLayout:
    """What the locator needs to know about a built working copy."""

    root: Path
    scripts: dict[str, str] = field(default_factory=dict)

    @classmethod
    def inspect(cls, root: Path) -> "ProjectLayout":
        try:
            scripts = manifest_scripts(read_manifest(root))
        except BuildError:
            scripts = {}
        return cls(root=root, scripts=scripts)

    @property
    def has_export_script(self) -> bool:
        return EXPORT_SCRIPT in self.scripts

    @property
    def framework_config(self) -> Path | None:
        for name in FRAMEWORK_CONFIGS:
            path = self.root / name
            if path.is_file():
                return path
        return None

    @property
    def framework_dir(self) -> Path:
        return self.root / FRAMEWORK_BUILD_DIR

    @property
    def standalone_dir(self) -> Path:
        return self.framework_dir / "standalone"

    @property
    def static_dir(self) -> Path:
        return self.framework_dir / "static"


Resolver = Callable[["ArtifactLocator", ProjectLayout, LogSink], Awaitable[Path]]


@dataclass(frozen=True)
class Strategy:
    kind: str
    applies: Callable[[ProjectLayout], bool]
    resolve: Resolver


async def _resolve_export(
    locator: "ArtifactLocator", layout: ProjectLayout, on_log: LogSink
) -> Path:
    await on_log("Exporting static files...")
    await locator.builder.run_script(layout.root, EXPORT_SCRIPT, on_log)
    await on_log("Static files exported successfully")
    return layout.root / EXPORT_DIR


async def _resolve_standalone(
    locator: "ArtifactLocator", layout: ProjectLayout, on_log: LogSink
) -> Path:
    await on_log("Detected Next.js project")
    await on_log("Detected Next.js standalone output")

    standalone = layout.standalone_dir
    if layout.static_dir.is_dir():
        target = standalone / "public" / "_next" / "static"
        await asyncio.to_thread(
            shutil.copytree, layout.static_dir, target, dirs_exist_ok=True
        )
    return standalone


async def _resolve_framework(
    locator: "ArtifactLocator", layout: ProjectLayout, on_log: LogSink
) -> Path:
    await on_log("Detected Next.js project")
    return layout.framework_dir


async def _resolve_conventional(
    locator: "ArtifactLocator", layout: ProjectLayout, on_log: LogSink
) -> Path:
    for name in CONVENTIONAL_DIRS:
        candidate = layout.root / name
        if candidate.is_dir():
            return candidate
    return layout.root / EXPORT_DIR


STRATEGIES: tuple[Strategy, ...] = (
    Strategy(
        kind="export-script",
        applies=lambda layout: layout.has_export_script,
        resolve=_resolve_export,
    ),
    Strategy(
        kind="framework-standalone",
        applies=lambda layout: (
            layout.framework_config is not None and layout.standalone_dir.is_dir()
        ),
        resolve=_resolve_standalone,
    ),
    Strategy(
        kind="framework-generic",
        applies=lambda layout: layout.framework_config is not None,
        resolve=_resolve_framework,
    ),
    Strategy(
        kind="conventional-dir",
        applies=lambda layout: True,
        resolve=_resolve_conventional,
    ),
)


class ArtifactLocator:
    """Finds the publishable output directory of a build."""

    def __init__(
        self,
        builder: BuildRunner | None = None,
        strategies: tuple[Strategy, ...] = STRATEGIES,
    ):
        self.builder = builder or BuildRunner()
        self.strategies = strategies

    def select(self, layout: ProjectLayout) -> Strategy:
        for strategy in self.strategies:
            if strategy.applies(layout):
                return strategy
        raise ArtifactNotFoundError(layout.root / EXPORT_DIR)

    def plan(self, workdir: Path) -> str:
        """Name of the strategy that would be used, without running it."""
        return self.select(ProjectLayout.inspect(workdir)).kind

    async def locate(self, workdir: Path, on_log: LogSink) -> Path:
        """Return the artifact directory for a built working copy.

        Raises:
            ArtifactNotFoundError: If the chosen directory does not exist
            BuildError: If the export script fails
        """
        layout = ProjectLayout.inspect(workdir)
        strategy = self.select(layout)
        output_dir = await strategy.resolve(self, layout, on_log)

        logger.info(
            "locator.resolved",
            strategy=strategy.kind,
            output_dir=str(output_dir),
            exists=output_dir.is_dir(),
        )

        if not output_dir.is_dir():
            raise ArtifactNotFoundError(output_dir)

        return output_dir
