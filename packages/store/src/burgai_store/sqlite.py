"""SQLiteStore, the local file-based store for review history and feedback.

Schema:
  reviews   one row per completed PR review. Comments are kept as a JSON
            column to keep read paths free of JOINs.
  feedback  one row per (repo, pr_number, comment_id, user); a second
            reaction from the same user replaces the first.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from burgai_store.base import BaseStore
from burgai_store.models import CommentRecord, FeedbackRecord, ReviewRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS reviews (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    repo            TEXT NOT NULL,
    pr_number       INTEGER NOT NULL,
    pr_title        TEXT,
    reviewer_model  TEXT,
    head_sha        TEXT,
    reviewed_at     TEXT,
    event           TEXT,
    total_comments  INTEGER DEFAULT 0,
    files_reviewed  INTEGER DEFAULT 0,
    success         INTEGER DEFAULT 1,
    used_fallback   INTEGER DEFAULT 0,
    retry_count     INTEGER DEFAULT 0,
    summary         TEXT DEFAULT '',
    error           TEXT,
    comments_json   TEXT DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_reviews_repo ON reviews (repo);
CREATE INDEX IF NOT EXISTS idx_reviews_pr   ON reviews (repo, pr_number);

CREATE TABLE IF NOT EXISTS feedback (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    repo         TEXT NOT NULL,
    pr_number    INTEGER NOT NULL,
    comment_id   TEXT NOT NULL,
    user         TEXT NOT NULL,
    action       TEXT NOT NULL,
    severity     TEXT NOT NULL,
    file         TEXT DEFAULT '',
    recorded_at  TEXT,
    UNIQUE (repo, pr_number, comment_id, user)
);
CREATE INDEX IF NOT EXISTS idx_feedback_repo ON feedback (repo);
"""


class SQLiteStore(BaseStore):
    """Stores review history and feedback in a local SQLite database file.

    The database file path defaults to `.burgai.db` in the current working
    directory. Configure via .burgai.yml: `store_path: /path/to/burgai.db`.
    """

    def __init__(self, db_path: str = ".burgai.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save(self, record: ReviewRecord) -> None:
        comments_json = json.dumps(
            [
                {
                    "file": c.file,
                    "line": c.line,
                    "severity": c.severity,
                    "comment": c.comment,
                    "rationale": c.rationale,
                    "suggestion": c.suggestion,
                }
                for c in record.comments
            ]
        )
        self._conn.execute(
            """
            INSERT INTO reviews
              (repo, pr_number, pr_title, reviewer_model, head_sha, reviewed_at, event,
               total_comments, files_reviewed, success, used_fallback, retry_count,
               summary, error, comments_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.repo,
                record.pr_number,
                record.pr_title,
                record.reviewer_model,
                record.head_sha,
                record.reviewed_at,
                record.event,
                record.total_comments,
                record.files_reviewed,
                int(record.success),
                int(record.used_fallback),
                record.retry_count,
                record.summary,
                record.error,
                comments_json,
            ),
        )
        self._conn.commit()

    def list_reviews(self, repo: str, pr_number: int | None = None) -> list[ReviewRecord]:
        if pr_number is not None:
            rows = self._conn.execute(
                "SELECT * FROM reviews WHERE repo=? AND pr_number=? ORDER BY reviewed_at, id",
                (repo, pr_number),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM reviews WHERE repo=? ORDER BY reviewed_at, id",
                (repo,),
            ).fetchall()

        return [self._row_to_record(r) for r in rows]

    def recent_reviews(self, repo: str, limit: int = 10) -> list[ReviewRecord]:
        rows = self._conn.execute(
            "SELECT * FROM reviews WHERE repo=? AND success=1 ORDER BY reviewed_at DESC, id DESC LIMIT ?",
            (repo, limit),
        ).fetchall()
        return [self._row_to_record(r) for r in rows]

    def record_feedback(self, feedback: FeedbackRecord) -> None:
        self._conn.execute(
            """
            INSERT INTO feedback
              (repo, pr_number, comment_id, user, action, severity, file, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (repo, pr_number, comment_id, user) DO UPDATE SET
              action=excluded.action,
              severity=excluded.severity,
              file=excluded.file,
              recorded_at=excluded.recorded_at
            """,
            (
                feedback.repo,
                feedback.pr_number,
                feedback.comment_id,
                feedback.user,
                feedback.action,
                feedback.severity,
                feedback.file,
                feedback.recorded_at,
            ),
        )
        self._conn.commit()
        logger.debug(
            "Recorded %s feedback on %s#%d comment %s",
            feedback.action,
            feedback.repo,
            feedback.pr_number,
            feedback.comment_id,
        )

    def list_feedback(self, repo: str) -> list[FeedbackRecord]:
        rows = self._conn.execute(
            "SELECT * FROM feedback WHERE repo=? ORDER BY recorded_at, id",
            (repo,),
        ).fetchall()
        return [
            FeedbackRecord(
                repo=r["repo"],
                pr_number=r["pr_number"],
                comment_id=r["comment_id"],
                user=r["user"],
                action=r["action"],
                severity=r["severity"],
                file=r["file"] or "",
                recorded_at=r["recorded_at"] or "",
            )
            for r in rows
        ]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ReviewRecord:
        comments_data = json.loads(row["comments_json"] or "[]")
        comments = [
            CommentRecord(
                file=c.get("file", ""),
                line=c.get("line", 0),
                severity=c.get("severity", "minor"),
                comment=c.get("comment", ""),
                rationale=c.get("rationale") or "",
                suggestion=c.get("suggestion"),
            )
            for c in comments_data
        ]
        return ReviewRecord(
            repo=row["repo"],
            pr_number=row["pr_number"],
            pr_title=row["pr_title"] or "",
            reviewer_model=row["reviewer_model"] or "",
            head_sha=row["head_sha"] or "",
            reviewed_at=row["reviewed_at"] or "",
            event=row["event"] or "",
            total_comments=row["total_comments"],
            files_reviewed=row["files_reviewed"],
            success=bool(row["success"]),
            used_fallback=bool(row["used_fallback"]),
            retry_count=row["retry_count"] or 0,
            summary=row["summary"] or "",
            error=row["error"],
            comments=comments,
        )
