"""Repository fetcher.

Produces a local working copy of a GitHub repository's default branch,
either by downloading the archive tarball from the GitHub API or by
running ``git clone``.
"""

import asyncio
import re
import shutil
import tarfile
from pathlib import Path

import httpx

from pushdeploy.config import Settings, get_settings
from pushdeploy.core.events import LogSink
from pushdeploy.core.exceptions import FetchError, InvalidRepoUrlError
from pushdeploy.models.deployment import RepoRef
from pushdeploy.utils.logging import get_logger
from pushdeploy.utils.process import run_streaming

logger = get_logger("fetcher")

REPO_URL_PATTERN = re.compile(r"https://github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)")

# The archive endpoint answers with a single redirect to codeload
MAX_REDIRECTS = 1

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def parse_repo_url(url: str | None) -> RepoRef:
    """Validate a canonical ``https://github.com/<owner>/<repo>`` URL.

    Raises:
        InvalidRepoUrlError: If the URL is missing or has any other shape
    """
    if not isinstance(url, str):
        raise InvalidRepoUrlError(url)

    match = REPO_URL_PATTERN.fullmatch(url)
    if not match:
        raise InvalidRepoUrlError(url)

    owner, repo = match.groups()
    if owner in (".", "..") or repo in (".", ".."):
        raise InvalidRepoUrlError(url)

    return RepoRef(owner=owner, repo=repo)


class RepositoryFetcher:
    """Downloads or clones a repository into a destination directory."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def strategy(self) -> str:
        return self.settings.fetch_strategy

    def tarball_url(self, ref: RepoRef) -> str:
        url = f"{self.settings.github_api_url.rstrip('/')}/repos/{ref.owner}/{ref.repo}/tarball"
        if self.settings.repo_ref:
            url = f"{url}/{self.settings.repo_ref}"
        return url

    async def fetch(self, ref: RepoRef, dest: Path, on_log: LogSink) -> None:
        """Populate ``dest`` with the repository content.

        Raises:
            FetchError: On network, archive or clone failures
        """
        logger.info(
            "fetcher.started",
            owner=ref.owner,
            repo=ref.repo,
            strategy=self.strategy,
            dest=str(dest),
        )

        if self.strategy == "clone":
            await self._clone(ref, dest, on_log)
        else:
            await self._fetch_tarball(ref, dest, on_log)

        logger.info("fetcher.completed", owner=ref.owner, repo=ref.repo)

    async def _fetch_tarball(self, ref: RepoRef, dest: Path, on_log: LogSink) -> None:
        # Scratch space is private to this deployment
        scratch = dest.parent / f".scratch-{dest.name}"
        archive = scratch / f"{ref.repo}.tar.gz"
        extract_dir = scratch / "extract"

        try:
            await asyncio.to_thread(scratch.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(dest.mkdir, parents=True, exist_ok=True)

            await self._download(ref, archive)
            await on_log("Extracting repository archive...")

            try:
                await asyncio.to_thread(_extract, archive, extract_dir)
            except (tarfile.TarError, EOFError, OSError) as e:
                raise FetchError(
                    f"Failed to extract repository archive: {e}",
                    {"archive": str(archive)},
                ) from e

            root = _find_extracted_root(extract_dir, ref)
            await asyncio.to_thread(_move_contents, root, dest)
        finally:
            await asyncio.to_thread(shutil.rmtree, scratch, ignore_errors=True)

    async def _download(self, ref: RepoRef, archive: Path) -> None:
        url = self.tarball_url(ref)
        logger.info("fetcher.download.started", url=url)

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.download_timeout,
                follow_redirects=False,
                headers={"User-Agent": self.settings.user_agent},
                transport=self._transport,
            ) as client:
                for hop in range(MAX_REDIRECTS + 1):
                    async with client.stream("GET", url) as response:
                        if response.is_redirect:
                            if hop == MAX_REDIRECTS:
                                raise FetchError(
                                    "Failed to download repository: too many redirects",
                                    {"url": url},
                                )
                            url = str(response.url.join(response.headers["location"]))
                            logger.debug("fetcher.download.redirect", location=url)
                            continue

                        if not response.is_success:
                            raise FetchError(
                                f"Failed to download repository: {response.status_code}",
                                {"url": url, "status_code": response.status_code},
                            )

                        size = 0
                        with archive.open("wb") as fh:
                            async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                                await asyncio.to_thread(fh.write, chunk)
                                size += len(chunk)

                        logger.info("fetcher.download.completed", bytes=size)
                        return
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to download repository: {e}", {"url": url}) from e

    async def _clone(self, ref: RepoRef, dest: Path, on_log: LogSink) -> None:
        await asyncio.to_thread(dest.parent.mkdir, parents=True, exist_ok=True)

        cmd = ["git", "clone", "--depth", "1"]
        if self.settings.repo_ref:
            cmd.extend(["--branch", self.settings.repo_ref])
        cmd.extend([ref.clone_url, str(dest)])

        display = " ".join(cmd)
        await on_log(f"$ {display}")

        try:
            returncode = await run_streaming(
                cmd,
                dest.parent,
                on_log,
                env={"GIT_TERMINAL_PROMPT": "0"},
            )
        except FileNotFoundError as e:
            raise FetchError("git is not installed", {"command": display}) from e

        if returncode != 0:
            raise FetchError(
                f"Failed to clone repository: git exited with code {returncode}",
                {"command": display, "exit_code": returncode},
            )


def _extract(archive: Path, target: Path) -> None:
    target.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive, "r:gz") as tar:
        tar.extractall(target, filter="data")


def _find_extracted_root(extract_dir: Path, ref: RepoRef) -> Path:
    """Locate the ``<owner>-<repo>-<sha>`` folder GitHub wraps the tree in."""
    dirs = [p for p in extract_dir.iterdir() if p.is_dir()] if extract_dir.is_dir() else []

    prefix = f"{ref.owner}-{ref.repo}-".lower()
    matches = [p for p in dirs if p.name.lower().startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches and len(dirs) == 1:
        return dirs[0]

    raise FetchError(
        "Could not find extracted repository directory",
        {"candidates": sorted(p.name for p in dirs)},
    )


def _move_contents(source: Path, dest: Path) -> None:
    for entry in source.iterdir():
        target = dest / entry.name
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()
        shutil.move(str(entry), str(target))
