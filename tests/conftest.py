"""Pytest configuration and fixtures."""

import stat
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from pushdeploy.api.deps import get_deployment_orchestrator, get_events
from pushdeploy.config import Settings, get_settings
from pushdeploy.core.events import EventBus
from pushdeploy.core.orchestrator import DeploymentOrchestrator
from pushdeploy.main import app
from pushdeploy.pipeline.builder import BuildRunner
from pushdeploy.services.storage import InMemoryStorage
from tests.helpers import FAKE_NPM, FakeFetcher, package_json


@pytest.fixture
def fake_npm(tmp_path: Path) -> Path:
    """Executable fake npm."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    npm = bin_dir / "npm"
    npm.write_text(FAKE_NPM)
    npm.chmod(npm.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return npm


@pytest.fixture
def work_root(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def settings(work_root: Path, fake_npm: Path) -> Settings:
    """Settings isolated to the test's temp directory."""
    return Settings(
        app_env="development",
        aws_region="us-west-2",
        s3_bucket_name="test-bucket",
        aws_access_key_id="test",
        aws_secret_access_key="test",
        work_root=str(work_root),
        fetch_strategy="tarball",
        npm_command=str(fake_npm),
    )


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def builder(settings: Settings) -> BuildRunner:
    return BuildRunner(settings)


@pytest.fixture
def static_site_files() -> dict[str, str]:
    """A repository whose build writes a dist/ folder."""
    return {
        "package.json": package_json(build="vite build"),
        "build.sh": (
            "mkdir -p dist/assets\n"
            "echo '<html><body>hello</body></html>' > dist/index.html\n"
            "echo 'body { color: red; }' > dist/assets/app.css\n"
            "echo 'vite v5 building for production...'\n"
        ),
    }


@pytest.fixture
def fetcher(static_site_files: dict[str, str]) -> FakeFetcher:
    return FakeFetcher(static_site_files)


@pytest.fixture
def orchestrator(
    settings: Settings,
    storage: InMemoryStorage,
    events: EventBus,
    fetcher: FakeFetcher,
) -> DeploymentOrchestrator:
    """Orchestrator wired to in-memory storage and a fake fetcher."""
    return DeploymentOrchestrator(
        settings=settings,
        storage=storage,
        events=events,
        fetcher=fetcher,
    )


@pytest.fixture
async def client(
    orchestrator: DeploymentOrchestrator,
    events: EventBus,
    settings: Settings,
) -> AsyncClient:
    """Async test client with the test orchestrator injected."""
    app.dependency_overrides[get_deployment_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_events] = lambda: events
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
