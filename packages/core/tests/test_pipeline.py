"""End-to-end tests for one PR event through generate → finalize → filter."""

import json
import random

import pytest

from burgai_core.config import RepoReviewConfig
from burgai_core.context import ChangedFile, PRContext
from burgai_core.errors import ModelAPIError
from burgai_core.finalize import EMERGENCY_COMMENT
from burgai_core.pipeline import review_pull_request
from burgai_core.providers.base import BaseModelClient
from burgai_core.schema import validate_review

PR = PRContext(
    repo="owner/repo",
    pr_number=9,
    title="Refactor checkout",
    changed_files=(
        ChangedFile(path="src/checkout.ts", patch="@@ -1 +1,2 @@\n ctx\n+total = price * qty", additions=1),
    ),
)


def _comment(severity, line):
    return {
        "filePath": "src/checkout.ts",
        "line": line,
        "severity": severity,
        "message": f"{severity} issue at {line}",
        "rationale": "this matters for correctness of the checkout flow",
    }


def _reply(comments, summary="Checkout refactor reviewed."):
    return json.dumps({"summary": summary, "comments": comments})


class _ScriptedClient(BaseModelClient):
    PROVIDER = "scripted"

    def __init__(self, *script):
        super().__init__(model="scripted-model")
        self.script = list(script)
        self.calls = 0

    def _call_api(self, system_prompt, user_prompt):
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, BaseException):
            raise item
        return item


class _Feedback:
    def __init__(self, severity, action):
        self.severity = severity
        self.action = action


@pytest.fixture(autouse=True)
def _no_sleep(mocker):
    mocker.patch("burgai_core.orchestrator.time.sleep")


def _config(**overrides):
    fields = dict(ignore_minor_threshold=0.0, ignore_major_threshold=0.0, adaptive_thresholds=False)
    fields.update(overrides)
    return RepoReviewConfig(**fields)


class TestReviewPullRequest:
    def test_valid_review_filtered_and_counted(self):
        comments = [_comment("critical", i + 1) for i in range(10)]
        comments += [_comment("major", i + 20) for i in range(10)]
        comments += [_comment("minor", i + 40) for i in range(10)]
        result = review_pull_request(PR, _config(max_comments_per_review=15), _ScriptedClient(_reply(comments)))

        assert result.success
        assert not result.used_fallback
        assert [c.severity for c in result.review.comments] == ["critical"] * 10 + ["major"] * 5
        assert result.review.metadata.total_comments == 15
        assert result.review.metadata.severity_breakdown.major == 5
        assert validate_review(result.review.model_dump(by_alias=True)).ok

    def test_unparseable_responses_use_fallback(self):
        result = review_pull_request(PR, _config(), _ScriptedClient("no json here"))

        assert not result.success
        assert result.used_fallback
        assert result.review.comments[0].file_path == "src/checkout.ts"
        assert result.error.startswith("parse_failure")

    def test_fatal_error_returns_no_review(self):
        result = review_pull_request(PR, _config(), _ScriptedClient(ModelAPIError(401, "bad key")))

        assert result.fatal
        assert result.review is None
        assert not result.used_fallback
        assert "bad key" in result.error

    def test_clean_pr_without_comments_gets_per_file_fallback(self):
        client = _ScriptedClient(_reply([], summary="No issues found in this change."))
        result = review_pull_request(PR, _config(), client)

        assert client.calls == 8
        assert not result.success
        assert result.used_fallback
        assert [c.file_path for c in result.review.comments] == ["src/checkout.ts"]
        assert EMERGENCY_COMMENT not in result.review.comments
        assert "comments: at least one comment is required" in result.review.metadata.validation_errors

    def test_empty_reply_then_findings_succeeds(self):
        client = _ScriptedClient(_reply([]), _reply([_comment("major", 2)]))
        result = review_pull_request(PR, _config(), client)

        assert result.success
        assert not result.used_fallback
        assert result.review.summary == "Checkout refactor reviewed."

    def test_validation_errors_carried_into_fallback_metadata(self):
        bad = json.dumps({"summary": 3, "comments": []})
        result = review_pull_request(PR, _config(), _ScriptedClient(bad))

        assert "summary: expected a string" in result.review.metadata.validation_errors

    def test_adaptive_thresholds_applied_from_feedback(self):
        feedback = [_Feedback("minor", "ignored")] * 11
        comments = [_comment("minor", i + 1) for i in range(5)] + [_comment("critical", 9)]
        config = _config(adaptive_thresholds=True)

        result = review_pull_request(PR, config, _ScriptedClient(_reply(comments)), feedback=feedback)

        assert result.effective_config.ignore_minor_threshold == 1.0
        assert [c.severity for c in result.review.comments] == ["critical"]

    def test_seeded_rng_is_reproducible(self):
        comments = [_comment("minor", i + 1) for i in range(20)]
        config = _config(ignore_minor_threshold=0.5)
        first = review_pull_request(PR, config, _ScriptedClient(_reply(comments)), rng=random.Random(3))
        second = review_pull_request(PR, config, _ScriptedClient(_reply(comments)), rng=random.Random(3))

        assert first.review.comments == second.review.comments
