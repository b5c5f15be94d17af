"""Unit tests for repository URL validation."""

import pytest

from pushdeploy.core.exceptions import InvalidRepoUrlError
from pushdeploy.pipeline.fetcher import parse_repo_url


class TestParseRepoUrl:
    """Tests for parse_repo_url."""

    @pytest.mark.parametrize(
        "url, owner, repo",
        [
            ("https://github.com/acme/site", "acme", "site"),
            ("https://github.com/Some-Org/my_repo.js", "Some-Org", "my_repo.js"),
            ("https://github.com/a/b", "a", "b"),
        ],
    )
    def test_accepts_canonical_urls(self, url: str, owner: str, repo: str):
        ref = parse_repo_url(url)

        assert ref.owner == owner
        assert ref.repo == repo
        assert ref.clone_url == f"https://github.com/{owner}/{repo}"

    @pytest.mark.parametrize(
        "url",
        [
            "not-a-github-url",
            "",
            "http://github.com/acme/site",
            "https://gitlab.com/acme/site",
            "https://github.com/acme",
            "https://github.com/acme/site/",
            "https://github.com/acme/site/tree/main",
            "https://github.com/acme/site?tab=readme",
            "https://github.com/acme/site#readme",
            "https://github.com/acme/site\n",
            " https://github.com/acme/site",
            "https://github.com/../site",
        ],
    )
    def test_rejects_other_shapes(self, url: str):
        with pytest.raises(InvalidRepoUrlError):
            parse_repo_url(url)

    def test_rejects_missing_url(self):
        with pytest.raises(InvalidRepoUrlError) as exc_info:
            parse_repo_url(None)

        assert exc_info.value.message == "Repository URL is required"
        assert exc_info.value.stage == "validation"

    def test_decision_is_deterministic(self):
        first = parse_repo_url("https://github.com/acme/site")
        second = parse_repo_url("https://github.com/acme/site")
        assert first == second
