"""Unit tests for the build runner."""

import os
from pathlib import Path

import pytest

from pushdeploy.core.exceptions import BuildError
from pushdeploy.pipeline.builder import BuildRunner, read_manifest
from pushdeploy.utils.process import MAX_LINE_BYTES, run_streaming
from tests.helpers import LogRecorder, package_json


class TestReadManifest:
    """Tests for manifest loading."""

    def test_missing_manifest(self, tmp_path: Path):
        with pytest.raises(BuildError) as exc_info:
            read_manifest(tmp_path)
        assert "package.json" in exc_info.value.message

    def test_invalid_json(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{not json")

        with pytest.raises(BuildError):
            read_manifest(tmp_path)

    def test_non_object(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("[]")

        with pytest.raises(BuildError):
            read_manifest(tmp_path)


class TestBuildRunner:
    """Tests for BuildRunner."""

    @pytest.fixture
    def project(self, tmp_path: Path) -> Path:
        project = tmp_path / "project"
        project.mkdir()
        (project / "package.json").write_text(package_json(build="vite build"))
        return project

    @pytest.mark.asyncio
    async def test_runs_install_then_build(self, builder: BuildRunner, project: Path, fake_npm: Path):
        (project / "build.sh").write_text("mkdir -p dist\necho built\n")
        log = LogRecorder()

        await builder.run(project, log)

        install = log.lines.index(f"$ {fake_npm} install")
        build = log.lines.index(f"$ {fake_npm} run build")
        assert install < build
        assert "added 0 packages" in log.lines
        assert "built" in log.lines
        assert (project / "dist").is_dir()

    @pytest.mark.asyncio
    async def test_stderr_alone_is_not_failure(self, builder: BuildRunner, project: Path):
        (project / "build.sh").write_text("echo 'warning: large chunk' >&2\n")
        log = LogRecorder()

        await builder.run(project, log)

        assert "warning: large chunk" in log.lines
        assert "npm warn deprecated something@1.0.0" in log.lines

    @pytest.mark.asyncio
    async def test_nonzero_exit_fails(self, builder: BuildRunner, project: Path):
        (project / "build.sh").write_text("echo 'Type error in src/main.ts'\nexit 2\n")
        log = LogRecorder()

        with pytest.raises(BuildError) as exc_info:
            await builder.run(project, log)

        assert exc_info.value.exit_code == 2
        assert exc_info.value.command.endswith("run build")
        assert "Type error in src/main.ts" in log.lines

    @pytest.mark.asyncio
    async def test_missing_manifest_runs_nothing(self, builder: BuildRunner, tmp_path: Path):
        log = LogRecorder()

        with pytest.raises(BuildError):
            await builder.run(tmp_path, log)

        assert log.lines == []

    @pytest.mark.asyncio
    async def test_missing_executable(self, settings, project: Path):
        runner = BuildRunner(settings.model_copy(update={"npm_command": "/nonexistent/npm"}))

        with pytest.raises(BuildError) as exc_info:
            await runner.run(project, LogRecorder())

        assert "Command not found" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_long_unterminated_output_is_not_failure(
        self, builder: BuildRunner, project: Path
    ):
        # Two million bytes with no newline, then a clean exit
        (project / "build.sh").write_text("head -c 2000000 /dev/zero | tr '\\0' x\nexit 0\n")
        log = LogRecorder()

        await builder.run(project, log)

        fragments = [line for line in log.lines if line and set(line) == {"x"}]
        assert sum(len(f) for f in fragments) == 2_000_000
        assert max(len(f) for f in fragments) <= MAX_LINE_BYTES
        assert log.lines[-1] == "Project built successfully"


class TestRunStreaming:
    """Tests for the subprocess helper."""

    @pytest.mark.asyncio
    async def test_returns_exit_code(self, tmp_path: Path):
        log = LogRecorder()

        code = await run_streaming(["sh", "-c", "echo one; echo two >&2; exit 3"], tmp_path, log)

        assert code == 3
        assert log.lines == ["one", "two"]

    @pytest.mark.asyncio
    async def test_child_is_killed_when_forwarding_fails(self, tmp_path: Path):
        async def failing_sink(message: str) -> None:
            raise RuntimeError("sink closed")

        with pytest.raises(RuntimeError, match="sink closed"):
            await run_streaming(
                ["sh", "-c", "echo $$ > child.pid; echo started; exec sleep 30"],
                tmp_path,
                failing_sink,
            )

        pid = int((tmp_path / "child.pid").read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
