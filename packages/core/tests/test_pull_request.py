"""Tests for GitHub pull request helper functions."""

from unittest.mock import MagicMock

from burgai_core.gh.pull_request import (
    get_diff,
    get_pull,
    get_pull_requests,
    get_repo,
    get_review_comments,
    is_self_authored,
)


def _pr_by(login):
    pr = MagicMock()
    pr.user.login = login
    return pr


class TestIsSelfAuthored:
    def test_owner_is_author(self):
        assert is_self_authored(_pr_by("acme"), "acme/widgets")

    def test_case_insensitive(self):
        assert is_self_authored(_pr_by("Acme"), "acme/widgets")

    def test_other_author(self):
        assert not is_self_authored(_pr_by("contributor"), "acme/widgets")

    def test_no_user(self):
        pr = MagicMock()
        pr.user = None
        assert not is_self_authored(pr, "acme/widgets")


class TestThinWrappers:
    def test_get_repo_uses_token(self, mocker):
        github = mocker.patch("burgai_core.gh.pull_request.Github")
        repo = get_repo("acme/widgets", token="t0k")
        github.assert_called_once_with("t0k")
        github.return_value.get_repo.assert_called_once_with("acme/widgets")
        assert repo is github.return_value.get_repo.return_value

    def test_get_pull(self):
        repo = MagicMock()
        assert get_pull(repo, 12) is repo.get_pull.return_value
        repo.get_pull.assert_called_once_with(12)

    def test_get_pull_requests_defaults_to_open(self):
        repo = MagicMock()
        get_pull_requests(repo)
        repo.get_pulls.assert_called_once_with(state="open")

    def test_get_diff_returns_files(self):
        pr = MagicMock()
        assert get_diff(pr) is pr.get_files.return_value

    def test_get_review_comments_materialises_list(self):
        pr = MagicMock()
        pr.get_review_comments.return_value = iter([MagicMock(), MagicMock()])
        comments = get_review_comments(pr)
        assert isinstance(comments, list)
        assert len(comments) == 2
