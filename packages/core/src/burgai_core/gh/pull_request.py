from __future__ import annotations

from github import Github


def get_repo(repo_name: str, token: str):
    return Github(token).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_pull_requests(repo, state: str = "open"):
    return repo.get_pulls(state=state)


def get_diff(pr):
    return pr.get_files()


def get_review_comments(pr) -> list:
    return list(pr.get_review_comments())


def is_self_authored(pr, repo_name: str) -> bool:
    """True when the PR was opened by the account that owns the repository."""
    owner = repo_name.split("/", 1)[0]
    user = pr.user
    return user is not None and (user.login or "").lower() == owner.lower()
