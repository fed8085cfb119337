"""
SQLite Store: persistent adapter for every Cadence port.

Provides portable persistence for:
- Review state per (learner, flashcard), with an optimistic-concurrency version
- The append-only attempt log, unique on (learner, flashcard, presented_at)
- Weekly slot templates
- Learner → flashcard enrollment (the curriculum the queue is built from)

Default database location: ~/.local/share/cadence/reviews.db
"""

import logging
import sqlite3
import threading
from datetime import datetime, time, timezone
from pathlib import Path

from cadence.domain.errors import DuplicateSubmissionError, StaleStateError
from cadence.domain.review.models import Attempt, CardStatus, Rating, ReviewState
from cadence.domain.review.ports import FlashcardCatalog, ReviewStore
from cadence.domain.slots.models import ReviewSlot, SlotType
from cadence.domain.slots.ports import SlotRepository

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS review_states (
    learner_id TEXT NOT NULL,
    flashcard_id TEXT NOT NULL,
    interval_days REAL NOT NULL DEFAULT 0,
    ease_factor REAL NOT NULL,
    repetitions INTEGER NOT NULL DEFAULT 0,
    lapses INTEGER NOT NULL DEFAULT 0,
    status TEXT NOT NULL DEFAULT 'new',
    due_at TEXT,
    last_reviewed_at TEXT,
    version INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (learner_id, flashcard_id)
);

CREATE TABLE IF NOT EXISTS attempts (
    attempt_id TEXT PRIMARY KEY,
    learner_id TEXT NOT NULL,
    flashcard_id TEXT NOT NULL,
    rated_at TEXT NOT NULL,
    rating TEXT NOT NULL,
    interval_before REAL NOT NULL,
    interval_after REAL NOT NULL,
    presented_at TEXT NOT NULL,
    status_before TEXT NOT NULL,
    status_after TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_attempts_presented
    ON attempts(learner_id, flashcard_id, presented_at);

CREATE INDEX IF NOT EXISTS idx_attempts_learner_rated
    ON attempts(learner_id, rated_at);

CREATE TABLE IF NOT EXISTS review_slots (
    slot_id TEXT PRIMARY KEY,
    learner_id TEXT NOT NULL,
    day_of_week INTEGER NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    capacity INTEGER,
    slot_type TEXT NOT NULL DEFAULT 'micro',
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_review_slots_learner
    ON review_slots(learner_id, day_of_week, start_time);

CREATE TABLE IF NOT EXISTS enrollments (
    learner_id TEXT NOT NULL,
    flashcard_id TEXT NOT NULL,
    enrolled_at TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (learner_id, flashcard_id)
);
"""


def _ts(moment: datetime | None) -> str | None:
    """Serialize a timestamp; aware values are stored in UTC so keys compare equal."""
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteStore(ReviewStore, SlotRepository, FlashcardCatalog):
    """
    SQLite-backed implementation of ReviewStore, SlotRepository and FlashcardCatalog.

    Writes go through one connection guarded by a lock; apply_review runs in a
    single transaction with a `WHERE version = ?` guard, so concurrent writers
    (even from other processes) cannot both apply against the same version.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self._init_schema()

        logger.info(f"SqliteStore initialized at {self.db_path}")

    @property
    def conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_schema(self) -> None:
        with self._lock:
            self.conn.executescript(SCHEMA)
            self.conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SqliteStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # =========================================================================
    # Review states
    # =========================================================================

    async def get_state(self, learner_id: str, flashcard_id: str) -> ReviewState | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM review_states WHERE learner_id = ? AND flashcard_id = ?",
                (learner_id, flashcard_id),
            ).fetchone()
        return self._row_to_state(row) if row else None

    async def list_states(self, learner_id: str) -> list[ReviewState]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM review_states WHERE learner_id = ? ORDER BY flashcard_id",
                (learner_id,),
            ).fetchall()
        return [self._row_to_state(r) for r in rows]

    async def apply_review(
        self, state: ReviewState, expected_version: int, attempt: Attempt
    ) -> ReviewState:
        stored = state.with_changes(version=expected_version + 1)
        values = (
            stored.interval_days,
            stored.ease_factor,
            stored.repetitions,
            stored.lapses,
            stored.status.value,
            _ts(stored.due_at),
            _ts(stored.last_reviewed_at),
            stored.version,
        )

        with self._lock:
            try:
                with self.conn:  # one transaction: commit on success, rollback on error
                    if expected_version == 0:
                        try:
                            self.conn.execute(
                                """
                                INSERT INTO review_states (
                                    interval_days, ease_factor, repetitions, lapses, status,
                                    due_at, last_reviewed_at, version, learner_id, flashcard_id
                                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                                """,
                                (*values, state.learner_id, state.flashcard_id),
                            )
                        except sqlite3.IntegrityError:
                            raise self._stale(state, expected_version) from None
                    else:
                        cursor = self.conn.execute(
                            """
                            UPDATE review_states SET
                                interval_days = ?, ease_factor = ?, repetitions = ?,
                                lapses = ?, status = ?, due_at = ?, last_reviewed_at = ?,
                                version = ?
                            WHERE learner_id = ? AND flashcard_id = ? AND version = ?
                            """,
                            (*values, state.learner_id, state.flashcard_id, expected_version),
                        )
                        if cursor.rowcount != 1:
                            raise self._stale(state, expected_version)

                    try:
                        self.conn.execute(
                            """
                            INSERT INTO attempts (
                                attempt_id, learner_id, flashcard_id, rated_at, rating,
                                interval_before, interval_after, presented_at,
                                status_before, status_after
                            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                            """,
                            (
                                attempt.attempt_id,
                                attempt.learner_id,
                                attempt.flashcard_id,
                                _ts(attempt.rated_at),
                                attempt.rating.value,
                                attempt.interval_before,
                                attempt.interval_after,
                                _ts(attempt.presented_at),
                                attempt.status_before.value,
                                attempt.status_after.value,
                            ),
                        )
                    except sqlite3.IntegrityError:
                        raise DuplicateSubmissionError(
                            attempt.learner_id, attempt.flashcard_id, attempt.presented_at
                        ) from None
            except (StaleStateError, DuplicateSubmissionError) as e:
                logger.warning(f"Rejected review write: {e}")
                raise

        return stored

    def _stale(self, state: ReviewState, expected_version: int) -> StaleStateError:
        row = self.conn.execute(
            "SELECT version FROM review_states WHERE learner_id = ? AND flashcard_id = ?",
            (state.learner_id, state.flashcard_id),
        ).fetchone()
        actual = row["version"] if row else 0
        return StaleStateError(state.learner_id, state.flashcard_id, expected_version, actual)

    def _row_to_state(self, row: sqlite3.Row) -> ReviewState:
        return ReviewState(
            learner_id=row["learner_id"],
            flashcard_id=row["flashcard_id"],
            interval_days=row["interval_days"],
            ease_factor=row["ease_factor"],
            repetitions=row["repetitions"],
            lapses=row["lapses"],
            status=CardStatus(row["status"]),
            due_at=_parse_ts(row["due_at"]),
            last_reviewed_at=_parse_ts(row["last_reviewed_at"]),
            version=row["version"],
        )

    # =========================================================================
    # Attempts
    # =========================================================================

    async def has_attempt(
        self, learner_id: str, flashcard_id: str, presented_at: datetime
    ) -> bool:
        with self._lock:
            row = self.conn.execute(
                """
                SELECT 1 FROM attempts
                WHERE learner_id = ? AND flashcard_id = ? AND presented_at = ?
                """,
                (learner_id, flashcard_id, _ts(presented_at)),
            ).fetchone()
        return row is not None

    async def list_attempts(
        self, learner_id: str, since: datetime | None = None
    ) -> list[Attempt]:
        query = "SELECT * FROM attempts WHERE learner_id = ?"
        params: list = [learner_id]
        if since is not None:
            query += " AND rated_at >= ?"
            params.append(_ts(since))
        query += " ORDER BY rated_at ASC"

        with self._lock:
            rows = self.conn.execute(query, params).fetchall()

        return [
            Attempt(
                attempt_id=row["attempt_id"],
                learner_id=row["learner_id"],
                flashcard_id=row["flashcard_id"],
                rated_at=_parse_ts(row["rated_at"]),
                rating=Rating(row["rating"]),
                interval_before=row["interval_before"],
                interval_after=row["interval_after"],
                presented_at=_parse_ts(row["presented_at"]),
                status_before=CardStatus(row["status_before"]),
                status_after=CardStatus(row["status_after"]),
            )
            for row in rows
        ]

    # =========================================================================
    # Slots
    # =========================================================================

    async def list_slots(self, learner_id: str) -> list[ReviewSlot]:
        with self._lock:
            rows = self.conn.execute(
                """
                SELECT * FROM review_slots WHERE learner_id = ?
                ORDER BY day_of_week ASC, start_time ASC
                """,
                (learner_id,),
            ).fetchall()
        return [self._row_to_slot(r) for r in rows]

    async def get_slot(self, slot_id: str) -> ReviewSlot | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM review_slots WHERE slot_id = ?", (slot_id,)
            ).fetchone()
        return self._row_to_slot(row) if row else None

    async def save_slot(self, slot: ReviewSlot) -> ReviewSlot:
        with self._lock, self.conn:
            self.conn.execute(
                """
                INSERT INTO review_slots (
                    slot_id, learner_id, day_of_week, start_time, end_time,
                    capacity, slot_type, is_active
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(slot_id) DO UPDATE SET
                    day_of_week = excluded.day_of_week,
                    start_time = excluded.start_time,
                    end_time = excluded.end_time,
                    capacity = excluded.capacity,
                    slot_type = excluded.slot_type,
                    is_active = excluded.is_active
                """,
                (
                    slot.slot_id,
                    slot.learner_id,
                    slot.day_of_week,
                    slot.start_time.isoformat(),
                    slot.end_time.isoformat(),
                    slot.capacity,
                    slot.slot_type.value,
                    int(slot.is_active),
                ),
            )
        return slot

    async def delete_slot(self, slot_id: str) -> bool:
        with self._lock, self.conn:
            cursor = self.conn.execute("DELETE FROM review_slots WHERE slot_id = ?", (slot_id,))
        return cursor.rowcount > 0

    def _row_to_slot(self, row: sqlite3.Row) -> ReviewSlot:
        return ReviewSlot(
            slot_id=row["slot_id"],
            learner_id=row["learner_id"],
            day_of_week=row["day_of_week"],
            start_time=time.fromisoformat(row["start_time"]),
            end_time=time.fromisoformat(row["end_time"]),
            capacity=row["capacity"],
            slot_type=SlotType(row["slot_type"]),
            is_active=bool(row["is_active"]),
        )

    # =========================================================================
    # Enrollment (flashcard catalog)
    # =========================================================================

    def enroll(self, learner_id: str, flashcard_id: str) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                "INSERT OR IGNORE INTO enrollments (learner_id, flashcard_id) VALUES (?, ?)",
                (learner_id, flashcard_id),
            )

    async def card_ids_for_learner(self, learner_id: str) -> list[str]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT flashcard_id FROM enrollments WHERE learner_id = ? ORDER BY enrolled_at, flashcard_id",
                (learner_id,),
            ).fetchall()
        return [row["flashcard_id"] for row in rows]

    async def exists(self, flashcard_id: str) -> bool:
        with self._lock:
            row = self.conn.execute(
                "SELECT 1 FROM enrollments WHERE flashcard_id = ? LIMIT 1", (flashcard_id,)
            ).fetchone()
        return row is not None
