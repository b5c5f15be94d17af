"""Deployment pipeline stages."""

from pushdeploy.pipeline.builder import BuildRunner
from pushdeploy.pipeline.fetcher import RepositoryFetcher, parse_repo_url
from pushdeploy.pipeline.locator import ArtifactLocator, Strategy
from pushdeploy.pipeline.publisher import Publisher, content_type_for, iter_files

__all__ = [
    "ArtifactLocator",
    "BuildRunner",
    "Publisher",
    "RepositoryFetcher",
    "Strategy",
    "content_type_for",
    "iter_files",
    "parse_repo_url",
]
