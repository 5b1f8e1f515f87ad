"""
Job Store - Durable Automation Queue
=====================================

One row per (customer event, channel). Jobs move pending -> completed or
pending -> failed exactly once: every status write is guarded by
`WHERE status = 'pending'`, so a second transition is a no-op.
"""

import logging
import sqlite3
from datetime import datetime
from typing import List, Optional

from ...domain.errors import ValidationError
from ...domain.models import (
    AutomationJob,
    Channel,
    JobStatus,
    payload_for,
)
from .database import Database, from_db_time, to_db_time

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_LIST_LIMIT = 100


class JobStore:
    """
    Repository for automation_jobs.

    Usage:
        store = JobStore(db)
        job_id = store.insert(job, now)
        for job in store.list_due(now):
            ...
            store.mark_completed(job.id, now)
    """

    def __init__(self, database: Database):
        self._db = database

    # ── Writes ─────────────────────────────────────────────────────

    def insert(self, job: AutomationJob, now: datetime) -> Optional[int]:
        """
        Persist a new pending job.

        Returns:
            The new job id, or None if a live job for the same review and
            channel already exists (the unique index rejected the insert).

        Raises:
            ValidationError: recipient missing or job not pending.
        """
        if not (job.recipient or "").strip():
            raise ValidationError(f"No recipient for {job.channel.value} job")
        if job.status != JobStatus.PENDING:
            raise ValidationError(f"Only pending jobs can be inserted (got {job.status.value})")

        email = job.recipient if job.channel == Channel.EMAIL else None
        phone = job.recipient if job.channel == Channel.SMS else None
        stamp = to_db_time(now)

        try:
            with self._db.connection() as conn:
                cursor = conn.execute(
                    """INSERT INTO automation_jobs
                           (user_id, review_id, template_id, channel, customer_id, customer_name,
                            customer_email, customer_phone, scheduled_for, trigger_type,
                            trigger_event, wait_days, status, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)""",
                    (job.user_id, job.review_id, job.template_id, job.channel.value,
                     job.customer_id, job.customer_name, email, phone,
                     to_db_time(job.scheduled_for), job.trigger_type, job.trigger_event,
                     job.wait_days, stamp, stamp)
                )
                job_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.info(
                f"Job already scheduled for review {job.review_id} "
                f"({job.channel.value}, user {job.user_id})"
            )
            return None

        job.id = job_id
        job.created_at = from_db_time(stamp)
        job.updated_at = job.created_at
        return job_id

    def mark_completed(self, job_id: int, now: datetime) -> bool:
        """pending -> completed. Returns False if the job was already terminal."""
        stamp = to_db_time(now)
        with self._db.connection() as conn:
            cursor = conn.execute(
                """UPDATE automation_jobs
                   SET status = 'completed', completed_at = ?, error_message = NULL, updated_at = ?
                   WHERE id = ? AND status = 'pending'""",
                (stamp, stamp, job_id)
            )
            changed = cursor.rowcount > 0

        if not changed:
            logger.debug(f"Job {job_id} not pending, completion ignored")
        return changed

    def mark_failed(self, job_id: int, error_message: str, now: datetime) -> bool:
        """pending -> failed. Returns False if the job was already terminal."""
        with self._db.connection() as conn:
            cursor = conn.execute(
                """UPDATE automation_jobs
                   SET status = 'failed', error_message = ?, updated_at = ?
                   WHERE id = ? AND status = 'pending'""",
                (error_message, to_db_time(now), job_id)
            )
            changed = cursor.rowcount > 0

        if not changed:
            logger.debug(f"Job {job_id} not pending, failure ignored")
        return changed

    # ── Reads ──────────────────────────────────────────────────────

    def get(self, job_id: int) -> Optional[AutomationJob]:
        with self._db.connection() as conn:
            row = conn.execute(
                "SELECT * FROM automation_jobs WHERE id = ?", (job_id,)
            ).fetchone()
            return self._row_to_job(row) if row else None

    def list_due(self, now: datetime, limit: int = DEFAULT_BATCH_SIZE) -> List[AutomationJob]:
        """
        Pending jobs whose scheduled_for has passed, earliest first.

        A row that cannot be turned into a valid job (recipient wiped by hand,
        unknown channel) is marked failed here instead of poisoning the batch.
        """
        with self._db.connection() as conn:
            rows = conn.execute(
                """SELECT * FROM automation_jobs
                   WHERE status = 'pending' AND scheduled_for <= ?
                   ORDER BY scheduled_for ASC, id ASC
                   LIMIT ?""",
                (to_db_time(now), limit)
            ).fetchall()

        jobs = []
        for row in rows:
            try:
                jobs.append(self._row_to_job(row))
            except (ValidationError, ValueError) as e:
                logger.warning(f"Job {row['id']} is unusable, marking failed: {e}")
                self.mark_failed(row["id"], str(e), now)
        return jobs

    def list_pending(self, limit: int = DEFAULT_LIST_LIMIT) -> List[AutomationJob]:
        """All pending jobs (due or not) with the owner's company, earliest first."""
        with self._db.connection() as conn:
            rows = conn.execute(
                """SELECT j.*, u.company AS company
                   FROM automation_jobs j
                   LEFT JOIN users u ON u.id = j.user_id
                   WHERE j.status = 'pending'
                   ORDER BY j.scheduled_for ASC, j.id ASC
                   LIMIT ?""",
                (limit,)
            ).fetchall()

        jobs = []
        for row in rows:
            try:
                jobs.append(self._row_to_job(row))
            except (ValidationError, ValueError) as e:
                logger.warning(f"Skipping unusable job {row['id']} in listing: {e}")
        return jobs

    def has_active_job(self, user_id: int, review_id: int, channel: Channel) -> bool:
        """True if a pending or completed job exists for this review and channel."""
        with self._db.connection() as conn:
            row = conn.execute(
                """SELECT 1 FROM automation_jobs
                   WHERE user_id = ? AND review_id = ? AND channel = ?
                     AND status IN ('pending', 'completed')
                   LIMIT 1""",
                (user_id, review_id, channel.value)
            ).fetchone()
            return row is not None

    def has_pending_review_job(self, user_id: int, review_id: int, channel: Channel) -> bool:
        with self._db.connection() as conn:
            row = conn.execute(
                """SELECT 1 FROM automation_jobs
                   WHERE user_id = ? AND review_id = ? AND channel = ? AND status = 'pending'
                   LIMIT 1""",
                (user_id, review_id, channel.value)
            ).fetchone()
            return row is not None

    def has_recent_job(
        self,
        user_id: int,
        customer_id: str,
        trigger_event: str,
        channel: Channel,
        since: datetime,
    ) -> bool:
        """True if any job (any status) was created for this customer event since `since`."""
        with self._db.connection() as conn:
            row = conn.execute(
                """SELECT 1 FROM automation_jobs
                   WHERE user_id = ? AND customer_id = ? AND trigger_event = ? AND channel = ?
                     AND created_at >= ?
                   LIMIT 1""",
                (user_id, str(customer_id), trigger_event, channel.value, to_db_time(since))
            ).fetchone()
            return row is not None

    def count_by_status(self, user_id: Optional[int] = None) -> dict:
        """Job counts per status, optionally per-user."""
        where = "WHERE user_id = ?" if user_id is not None else ""
        params = (user_id,) if user_id is not None else ()

        with self._db.connection() as conn:
            rows = conn.execute(
                f"SELECT status, COUNT(*) AS n FROM automation_jobs {where} GROUP BY status",
                params
            ).fetchall()

        counts = {status.value: 0 for status in JobStatus}
        for row in rows:
            counts[row["status"]] = row["n"]
        counts["total"] = sum(counts.values())
        return counts

    # ── Row converter ──────────────────────────────────────────────

    def _row_to_job(self, row: sqlite3.Row) -> AutomationJob:
        """Convert database row to AutomationJob; raises ValidationError on a bad recipient."""
        channel = Channel(row["channel"])
        recipient = row["customer_email"] if channel == Channel.EMAIL else row["customer_phone"]
        keys = row.keys()

        return AutomationJob(
            id=row["id"],
            user_id=row["user_id"],
            review_id=row["review_id"],
            template_id=row["template_id"],
            payload=payload_for(channel, recipient),
            scheduled_for=from_db_time(row["scheduled_for"]),
            customer_id=row["customer_id"] or "",
            customer_name=row["customer_name"] or "",
            trigger_type=row["trigger_type"],
            trigger_event=row["trigger_event"] or "",
            wait_days=row["wait_days"] or 0,
            status=JobStatus(row["status"]),
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
            completed_at=from_db_time(row["completed_at"]),
            error_message=row["error_message"],
            business_name=(row["company"] or "") if "company" in keys else "",
        )
