"""Tests for the model call orchestrator: retry budgets, error classes, envelopes."""

import json

import pytest

from burgai_core.breaker import CircuitBreakerState, CircuitState
from burgai_core.config import RepoReviewConfig
from burgai_core.context import ChangedFile, PRContext
from burgai_core.errors import ModelAPIError, ModelTimeoutError
from burgai_core.orchestrator import (
    MAX_ATTEMPTS,
    ErrorKind,
    backoff_delay_ms,
    classify_error,
    coerce_review,
    generate_review,
    parse_model_json,
    rate_limit_delay_ms,
)
from burgai_core.providers.base import BaseModelClient

SCENARIO_A = (
    '{"summary":"ok","comments":[{"filePath":"a.ts","line":5,"severity":"critical","message":"SQL injection",'
    '"rationale":"user input concatenated into query string without parameterization"}]}'
)

PR = PRContext(
    repo="owner/repo",
    pr_number=7,
    title="Add search endpoint",
    description="Adds /search",
    changed_files=(
        ChangedFile(path="a.ts", patch="@@ -1,2 +1,6 @@\n ctx\n+a\n+b\n+c\n+d\n ctx", additions=4, deletions=0),
        ChangedFile(path="docs/search.md", patch="@@ -0,0 +1 @@\n+doc", additions=1, deletions=0),
    ),
)
CONFIG = RepoReviewConfig(provider="openai", model="gpt-4o")


class _ScriptedClient(BaseModelClient):
    """Replays a script of responses; Exception entries are raised instead of returned."""

    PROVIDER = "scripted"

    def __init__(self, script):
        super().__init__(model="scripted-model")
        self.script = list(script)
        self.calls = 0

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def sleep(mocker):
    return mocker.patch("burgai_core.orchestrator.time.sleep")


def _slept_ms(sleep):
    return [round(call.args[0] * 1000) for call in sleep.call_args_list]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


class TestDelays:
    def test_generic_backoff_caps_at_eight_x(self):
        assert [backoff_delay_ms(i) for i in range(6)] == [3000, 6000, 12000, 24000, 24000, 24000]

    def test_rate_limit_backoff_doubles(self):
        assert [rate_limit_delay_ms(i) for i in range(5)] == [8000, 16000, 32000, 64000, 128000]


class TestClassifyError:
    @pytest.mark.parametrize(
        "exc, kind",
        [
            (ModelAPIError(429, "slow down"), ErrorKind.RATE_LIMITED),
            (ModelAPIError(500, "oops"), ErrorKind.SERVER_ERROR),
            (ModelAPIError(502, "bad gateway"), ErrorKind.SERVER_ERROR),
            (ModelAPIError(503, "unavailable"), ErrorKind.SERVER_ERROR),
            (ModelTimeoutError(), ErrorKind.SERVER_ERROR),
            (ModelAPIError(401, "bad key"), ErrorKind.FATAL),
            (ModelAPIError(400, "bad request"), ErrorKind.FATAL),
            (ModelAPIError(504, "gateway timeout"), ErrorKind.FATAL),
            (RuntimeError("bug"), ErrorKind.FATAL),
        ],
    )
    def test_classification(self, exc, kind):
        assert classify_error(exc) is kind


class TestParseModelJson:
    def test_direct(self):
        assert parse_model_json('{"a": 1}') == {"a": 1}

    def test_recovered(self):
        assert parse_model_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_unrecoverable(self):
        assert parse_model_json("I cannot help with that.") is None


class TestCoerceReview:
    def test_requires_summary_and_comments(self):
        result = coerce_review({"comments": "nope"})
        assert not result.ok
        assert "summary: expected a string" in result.errors
        assert "comments: expected a list" in result.errors

    def test_non_object_rejected(self):
        assert not coerce_review(["a"]).ok

    def test_bad_comments_dropped_and_recorded(self):
        data = json.loads(SCENARIO_A)
        data["comments"].append({"filePath": "b.ts", "line": 0, "severity": "minor", "message": "x", "rationale": "y"})
        review = coerce_review(data).value
        assert len(review.comments) == 1
        assert any(e.startswith("comments.1.line") for e in review.metadata.validation_errors)

    def test_all_comments_invalid_rejects_document(self):
        data = {"summary": "Plenty of issues.", "comments": [{"filePath": "", "line": 0}]}
        assert not coerce_review(data).ok

    def test_empty_comment_list_rejected(self):
        result = coerce_review({"summary": "Nothing to report here.", "comments": []})
        assert not result.ok
        assert "comments: at least one comment is required" in result.errors

    def test_unknown_top_level_key_rejected(self):
        data = json.loads(SCENARIO_A)
        data["verdict"] = "approve"
        result = coerce_review(data)
        assert not result.ok
        assert "verdict: unknown field" in result.errors

    def test_metadata_key_allowed(self):
        data = json.loads(SCENARIO_A)
        data["metadata"] = {"totalComments": 99}
        review = coerce_review(data).value
        assert review.metadata.total_comments == 1

    def test_legacy_comments_adapted(self):
        data = {"summary": "Reconstructed.", "comments": [{"filePath": "a.py", "line": 3, "severity": "medium"}]}
        review = coerce_review(data).value
        assert review.comments[0].severity == "major"

    def test_more_than_fifty_comments_cut_in_order(self):
        comment = json.loads(SCENARIO_A)["comments"][0]
        data = {"summary": "Lots of findings.", "comments": [{**comment, "line": i + 1} for i in range(60)]}
        review = coerce_review(data).value
        assert len(review.comments) == 50
        assert review.comments[-1].line == 50


# ---------------------------------------------------------------------------
# generate_review
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_valid_response_first_try(self, sleep):
        """Scenario A: direct parse, validation succeeds, no retries."""
        client = _ScriptedClient([SCENARIO_A])
        envelope = generate_review(PR, CONFIG, client)

        assert envelope.success
        assert envelope.parsed is not None
        assert len(envelope.parsed.comments) == 1
        assert envelope.parsed.summary == "Review summary: ok"
        assert envelope.retry_count == 0
        assert envelope.fallback_comments == []
        assert envelope.validation_errors is None
        sleep.assert_not_called()

    def test_fenced_response_first_try(self, sleep):
        """Scenario B: fences stripped, parse succeeds on attempt 1."""
        client = _ScriptedClient(["```json\n" + SCENARIO_A + "\n```"])
        envelope = generate_review(PR, CONFIG, client)

        assert envelope.success
        assert client.calls == 1

    def test_rate_limited_three_times(self, sleep):
        """Scenario D: waits 8s, 16s, 32s then succeeds on the 4th call."""
        limited = ModelAPIError(429, "Too Many Requests")
        client = _ScriptedClient([limited, limited, limited, SCENARIO_A])
        envelope = generate_review(PR, CONFIG, client)

        assert envelope.success
        assert _slept_ms(sleep) == [8000, 16000, 32000]
        assert envelope.retry_count == 3
        assert envelope.metadata["rate_limit_retries"] == 3

    def test_always_malformed_exhausts_generic_budget(self, sleep):
        """Eight attempts, then fallback comments and success = False."""
        client = _ScriptedClient(["this is not json, sorry"])
        envelope = generate_review(PR, CONFIG, client)

        assert client.calls == MAX_ATTEMPTS == 8
        assert not envelope.success
        assert not envelope.fatal
        assert envelope.parsed is None
        assert len(envelope.fallback_comments) >= 1
        assert envelope.retry_count == 7
        assert _slept_ms(sleep) == [3000, 6000, 12000, 24000, 24000, 24000, 24000]
        assert envelope.metadata["error"].startswith("parse_failure")


class TestRetryBudgets:
    def test_server_errors_then_success(self, sleep):
        client = _ScriptedClient([ModelAPIError(503, "down"), ModelTimeoutError(), SCENARIO_A])
        envelope = generate_review(PR, CONFIG, client)

        assert envelope.success
        assert envelope.retry_count == 2
        assert _slept_ms(sleep) == [3000, 6000]

    def test_validation_failures_share_generic_budget(self, sleep):
        invalid = json.dumps({"summary": 42, "comments": []})
        client = _ScriptedClient([invalid])
        envelope = generate_review(PR, CONFIG, client)

        assert client.calls == 8
        assert envelope.validation_errors
        assert "summary: expected a string" in envelope.validation_errors

    def test_empty_response_is_retried(self, sleep):
        client = _ScriptedClient(["", "   ", SCENARIO_A])
        envelope = generate_review(PR, CONFIG, client)

        assert envelope.success
        assert client.calls == 3

    def test_empty_comment_list_retried(self, sleep):
        empty = json.dumps({"summary": "No issues found in this change.", "comments": []})
        client = _ScriptedClient([empty, SCENARIO_A])
        envelope = generate_review(PR, CONFIG, client)

        assert envelope.success
        assert client.calls == 2
        assert _slept_ms(sleep) == [3000]

    def test_rate_limit_budget_independent_of_generic(self, sleep):
        limited = ModelAPIError(429, "Too Many Requests")
        script = ["garbage"] * 7 + [limited] * 5 + [SCENARIO_A]
        client = _ScriptedClient(script)
        envelope = generate_review(PR, CONFIG, client)

        assert envelope.success
        assert client.calls == 13

    def test_rate_limit_exhaustion_falls_back(self, sleep):
        client = _ScriptedClient([ModelAPIError(429, "Too Many Requests")])
        envelope = generate_review(PR, CONFIG, client)

        assert client.calls == 6
        assert not envelope.success
        assert not envelope.fatal
        assert envelope.fallback_comments
        assert _slept_ms(sleep) == [8000, 16000, 32000, 64000, 128000]


class TestFatalErrors:
    @pytest.mark.parametrize("exc", [ModelAPIError(401, "invalid api key"), ModelAPIError(400, "bad request")])
    def test_fatal_status_stops_without_fallback(self, sleep, exc):
        client = _ScriptedClient([exc])
        envelope = generate_review(PR, CONFIG, client)

        assert client.calls == 1
        assert envelope.fatal
        assert not envelope.success
        assert envelope.fallback_comments == []
        assert "invalid api key" in envelope.metadata["error"] or "bad request" in envelope.metadata["error"]
        sleep.assert_not_called()

    def test_unexpected_exception_is_fatal(self, sleep):
        client = _ScriptedClient([KeyError("choices")])
        envelope = generate_review(PR, CONFIG, client)

        assert envelope.fatal
        assert "KeyError" in envelope.metadata["error"]


class TestEnvelope:
    def test_request_recorded(self, sleep):
        client = _ScriptedClient([SCENARIO_A])
        envelope = generate_review(PR, CONFIG, client, prompt="custom prompt")

        assert envelope.request.prompt == "custom prompt"
        assert envelope.request.provider == "scripted"
        assert envelope.request.model == "scripted-model"
        assert envelope.request.max_tokens == 4000
        assert envelope.raw == SCENARIO_A

    def test_default_prompt_includes_diff(self, sleep):
        envelope = generate_review(PR, CONFIG, _ScriptedClient([SCENARIO_A]))
        assert "a.ts" in envelope.request.prompt
        assert "+a" in envelope.request.prompt

    def test_timing_metadata(self, sleep):
        envelope = generate_review(PR, CONFIG, _ScriptedClient([SCENARIO_A]))
        assert envelope.metadata["attempts"] == 1
        assert envelope.metadata["total_duration_ms"] >= 0
        assert envelope.metadata["api_call_duration_ms"] >= 0
        assert envelope.parsed.metadata.analysis_time >= 0

    def test_fallback_comments_cover_changed_files(self, sleep):
        envelope = generate_review(PR, CONFIG, _ScriptedClient(["nope"]))
        assert {c.file_path for c in envelope.fallback_comments} == {"a.ts", "docs/search.md"}


class TestCircuitBreaker:
    def test_open_breaker_skips_model(self, sleep, mocker):
        mocker.patch("burgai_core.breaker.time.time", return_value=1000.0)
        breaker = CircuitBreakerState(state=CircuitState.OPEN, failure_count=5, last_failure_time=990.0)
        client = _ScriptedClient([SCENARIO_A])

        envelope = generate_review(PR, CONFIG, client, breaker=breaker)

        assert client.calls == 0
        assert not envelope.success
        assert envelope.fallback_comments
        assert "Circuit breaker open" in envelope.metadata["error"]

    def test_expired_breaker_allows_trial_and_closes(self, sleep, mocker):
        mocker.patch("burgai_core.breaker.time.time", return_value=1000.0)
        breaker = CircuitBreakerState(state=CircuitState.OPEN, failure_count=5, last_failure_time=900.0)

        envelope = generate_review(PR, CONFIG, _ScriptedClient([SCENARIO_A]), breaker=breaker)

        assert envelope.success
        assert envelope.breaker.state is CircuitState.CLOSED
        assert envelope.breaker.failure_count == 0

    def test_server_errors_open_breaker(self, sleep):
        client = _ScriptedClient([ModelAPIError(500, "down")])
        envelope = generate_review(PR, CONFIG, client, breaker=CircuitBreakerState(failure_threshold=3))

        assert envelope.breaker.state is CircuitState.OPEN
        # The breaker only gates entry; the running call keeps its full budget.
        assert client.calls == 8

    def test_rate_limits_do_not_trip_breaker(self, sleep):
        limited = ModelAPIError(429, "Too Many Requests")
        envelope = generate_review(PR, CONFIG, _ScriptedClient([limited]), breaker=CircuitBreakerState())
        assert envelope.breaker.state is CircuitState.CLOSED
        assert envelope.breaker.failure_count == 0
