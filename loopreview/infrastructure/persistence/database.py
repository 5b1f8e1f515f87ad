"""
SQLite Database Repository - Business Records
==============================================

Stores the records automation reads: business owners and their sessions,
customers, reviews, review links and the per-channel templates.
Every query is scoped by user_id so a business only ever sees its own data.

The automation job queue lives in job_store.py and shares this connection
handling.
"""

import logging
import secrets
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from ...domain.models import Channel, Customer, Review, ReviewLink, Template, User

logger = logging.getLogger(__name__)

DATABASE_FILE = "loopreview.db"

TEMPLATE_TABLES = {
    Channel.EMAIL: "email_templates",
    Channel.SMS: "sms_templates",
}


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp as fixed-width UTC ISO text (sortable as a string)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Database:
    """
    SQLite database for Loop Review.

    Usage:
        db = Database()
        db.init()

        user_id = db.create_user("owner@bakery.com", company="Sunrise Bakery")
        db.upsert_template(user_id, Channel.EMAIL, content="Hi {{customerName}}!")
        review_id = db.add_review(user_id, rating=5, customer_email="jo@example.com")
    """

    def __init__(self, db_path: str = DATABASE_FILE):
        self.db_path = db_path

    @contextmanager
    def connection(self):
        """Get database connection with context manager."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init(self):
        """Initialize database tables."""
        with self.connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT UNIQUE NOT NULL,
                    company TEXT DEFAULT '',
                    subscription_type TEXT DEFAULT 'free',
                    subscription_status TEXT DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_sessions (
                    session_token TEXT PRIMARY KEY,
                    user_id INTEGER NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS customers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    name TEXT NOT NULL DEFAULT '',
                    email TEXT DEFAULT '',
                    phone TEXT DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS reviews (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    rating INTEGER NOT NULL,
                    customer_id TEXT DEFAULT '',
                    customer_name TEXT DEFAULT '',
                    customer_email TEXT DEFAULT '',
                    comment TEXT DEFAULT '',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_reviews_user_created ON reviews(user_id, created_at)"
            )

            conn.execute("""
                CREATE TABLE IF NOT EXISTS review_links (
                    user_id INTEGER PRIMARY KEY,
                    review_url TEXT DEFAULT '',
                    company_name TEXT DEFAULT ''
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS email_templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER UNIQUE NOT NULL,
                    name TEXT DEFAULT '',
                    subject TEXT DEFAULT '',
                    content TEXT NOT NULL DEFAULT '',
                    from_email TEXT DEFAULT '',
                    initial_trigger TEXT DEFAULT 'immediate',
                    initial_wait_days INTEGER DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS sms_templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER UNIQUE NOT NULL,
                    name TEXT DEFAULT '',
                    content TEXT NOT NULL DEFAULT '',
                    sender_name TEXT DEFAULT '',
                    initial_trigger TEXT DEFAULT 'immediate',
                    initial_wait_days INTEGER DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS automation_jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL,
                    review_id INTEGER,
                    template_id INTEGER NOT NULL,
                    channel TEXT NOT NULL CHECK (channel IN ('email', 'sms')),
                    customer_id TEXT DEFAULT '',
                    customer_name TEXT DEFAULT '',
                    customer_email TEXT,
                    customer_phone TEXT,
                    scheduled_for TEXT NOT NULL,
                    trigger_type TEXT NOT NULL,
                    trigger_event TEXT DEFAULT '',
                    wait_days INTEGER DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'completed', 'failed')),
                    completed_at TEXT,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_jobs_status_scheduled "
                "ON automation_jobs(status, scheduled_for)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_jobs_review_channel "
                "ON automation_jobs(user_id, review_id, channel)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_jobs_customer_event "
                "ON automation_jobs(user_id, customer_id, trigger_event, channel, created_at)"
            )
            # Backstop for the duplicate guard: one live job per review and channel
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS ux_jobs_review_channel_live "
                "ON automation_jobs(user_id, review_id, channel) "
                "WHERE review_id IS NOT NULL AND status IN ('pending', 'completed')"
            )

            logger.info(f"Database initialized: {self.db_path}")

    # ── Users & sessions ───────────────────────────────────────────

    def create_user(
        self,
        email: str,
        company: str = "",
        subscription_type: str = "free",
        subscription_status: str = "",
    ) -> Optional[int]:
        """Create a business owner. Returns None if the email is taken."""
        try:
            with self.connection() as conn:
                cursor = conn.execute(
                    """INSERT INTO users (email, company, subscription_type, subscription_status)
                       VALUES (?, ?, ?, ?)""",
                    (email, company, subscription_type, subscription_status)
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.warning(f"User with email {email} already exists")
            return None

    def get_user(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    def create_session(self, user_id: int, token: Optional[str] = None) -> str:
        """Create a login session and return its token."""
        token = token or secrets.token_urlsafe(32)
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO user_sessions (session_token, user_id) VALUES (?, ?)",
                (token, user_id)
            )
        return token

    def get_user_id_for_session(self, session_token: str) -> Optional[int]:
        """Resolve a session token to its user id, or None."""
        if not session_token:
            return None
        with self.connection() as conn:
            row = conn.execute(
                "SELECT user_id FROM user_sessions WHERE session_token = ?", (session_token,)
            ).fetchone()
            return row["user_id"] if row else None

    # ── Customers ──────────────────────────────────────────────────

    def add_customer(self, user_id: int, name: str, email: str = "", phone: str = "") -> int:
        """Add a customer for a specific user."""
        with self.connection() as conn:
            cursor = conn.execute(
                "INSERT INTO customers (user_id, name, email, phone) VALUES (?, ?, ?, ?)",
                (user_id, name, email or "", phone or "")
            )
            return cursor.lastrowid

    def get_customer(self, customer_id, user_id: int) -> Optional[Customer]:
        """Get a customer by ID, only if it belongs to user_id."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM customers WHERE id = ? AND user_id = ?", (customer_id, user_id)
            ).fetchone()
            return self._row_to_customer(row) if row else None

    # ── Reviews ────────────────────────────────────────────────────

    def add_review(
        self,
        user_id: int,
        rating: int,
        customer_id: str = "",
        customer_name: str = "",
        customer_email: str = "",
        comment: str = "",
        created_at: Optional[datetime] = None,
    ) -> int:
        """Record a submitted review."""
        created_at = created_at or datetime.now(timezone.utc)
        with self.connection() as conn:
            cursor = conn.execute(
                """INSERT INTO reviews
                       (user_id, rating, customer_id, customer_name, customer_email, comment, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (user_id, rating, str(customer_id or ""), customer_name or "",
                 customer_email or "", comment or "", to_db_time(created_at))
            )
            return cursor.lastrowid

    def get_review(self, review_id: int) -> Optional[Review]:
        """Get review by ID."""
        with self.connection() as conn:
            row = conn.execute("SELECT * FROM reviews WHERE id = ?", (review_id,)).fetchone()
            return self._row_to_review(row) if row else None

    def get_recent_reviews(self, user_id: int, since: datetime, limit: int = 50) -> List[Review]:
        """Reviews created at or after `since`, newest first."""
        with self.connection() as conn:
            rows = conn.execute(
                """SELECT * FROM reviews
                   WHERE user_id = ? AND created_at >= ?
                   ORDER BY created_at DESC LIMIT ?""",
                (user_id, to_db_time(since), limit)
            ).fetchall()
            return [self._row_to_review(row) for row in rows]

    # ── Review links ───────────────────────────────────────────────

    def upsert_review_link(self, user_id: int, review_url: str, company_name: str = ""):
        """Create or replace the business's review page link."""
        with self.connection() as conn:
            conn.execute(
                """INSERT INTO review_links (user_id, review_url, company_name) VALUES (?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                       review_url = excluded.review_url,
                       company_name = excluded.company_name""",
                (user_id, review_url, company_name)
            )

    def get_review_link(self, user_id: int) -> Optional[ReviewLink]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM review_links WHERE user_id = ?", (user_id,)
            ).fetchone()
            if not row:
                return None
            return ReviewLink(
                user_id=row["user_id"],
                review_url=row["review_url"] or "",
                company_name=row["company_name"] or "",
            )

    # ── Templates ──────────────────────────────────────────────────

    def upsert_template(
        self,
        user_id: int,
        channel: Channel,
        content: str,
        subject: str = "",
        from_email: str = "",
        sender_name: str = "",
        name: str = "",
        initial_trigger: str = "immediate",
        initial_wait_days: int = 0,
        now: Optional[datetime] = None,
    ) -> Template:
        """Create or update the single template a business has for a channel."""
        stamp = to_db_time(now or datetime.now(timezone.utc))
        wait_days = max(int(initial_wait_days or 0), 0)

        with self.connection() as conn:
            if channel == Channel.EMAIL:
                conn.execute(
                    """INSERT INTO email_templates
                           (user_id, name, subject, content, from_email,
                            initial_trigger, initial_wait_days, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(user_id) DO UPDATE SET
                           name = excluded.name,
                           subject = excluded.subject,
                           content = excluded.content,
                           from_email = excluded.from_email,
                           initial_trigger = excluded.initial_trigger,
                           initial_wait_days = excluded.initial_wait_days,
                           updated_at = excluded.updated_at""",
                    (user_id, name, subject, content, from_email,
                     initial_trigger, wait_days, stamp, stamp)
                )
            else:
                conn.execute(
                    """INSERT INTO sms_templates
                           (user_id, name, content, sender_name,
                            initial_trigger, initial_wait_days, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(user_id) DO UPDATE SET
                           name = excluded.name,
                           content = excluded.content,
                           sender_name = excluded.sender_name,
                           initial_trigger = excluded.initial_trigger,
                           initial_wait_days = excluded.initial_wait_days,
                           updated_at = excluded.updated_at""",
                    (user_id, name, content, sender_name,
                     initial_trigger, wait_days, stamp, stamp)
                )

            row = conn.execute(
                f"SELECT * FROM {TEMPLATE_TABLES[channel]} WHERE user_id = ?", (user_id,)
            ).fetchone()

        logger.info(f"Saved {channel.value} template for user {user_id} (trigger={initial_trigger})")
        return self._row_to_template(row, channel)

    def get_template(self, user_id: int, channel: Channel) -> Optional[Template]:
        """The business's template for a channel, or None."""
        with self.connection() as conn:
            row = conn.execute(
                f"SELECT * FROM {TEMPLATE_TABLES[channel]} WHERE user_id = ?", (user_id,)
            ).fetchone()
            return self._row_to_template(row, channel) if row else None

    def get_template_by_id(self, template_id: int, channel: Channel) -> Optional[Template]:
        with self.connection() as conn:
            row = conn.execute(
                f"SELECT * FROM {TEMPLATE_TABLES[channel]} WHERE id = ?", (template_id,)
            ).fetchone()
            return self._row_to_template(row, channel) if row else None

    # ── Row converters ─────────────────────────────────────────────

    def _row_to_user(self, row: sqlite3.Row) -> User:
        """Convert database row to User object."""
        return User(
            id=row["id"],
            email=row["email"],
            company=row["company"] or "",
            subscription_type=row["subscription_type"] or "free",
            subscription_status=row["subscription_status"] or "",
            created_at=row["created_at"] or "",
        )

    def _row_to_customer(self, row: sqlite3.Row) -> Customer:
        return Customer(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"] or "",
            email=row["email"] or "",
            phone=row["phone"] or "",
            created_at=row["created_at"] or "",
        )

    def _row_to_review(self, row: sqlite3.Row) -> Review:
        return Review(
            id=row["id"],
            user_id=row["user_id"],
            rating=row["rating"],
            customer_id=row["customer_id"] or "",
            customer_name=row["customer_name"] or "",
            customer_email=row["customer_email"] or "",
            comment=row["comment"] or "",
            created_at=row["created_at"] or "",
        )

    def _row_to_template(self, row: sqlite3.Row, channel: Channel) -> Template:
        """Convert a row from either template table; absent columns default."""
        keys = row.keys()
        return Template(
            id=row["id"],
            user_id=row["user_id"],
            channel=channel,
            content=row["content"] or "",
            subject=(row["subject"] or "") if "subject" in keys else "",
            from_email=(row["from_email"] or "") if "from_email" in keys else "",
            sender_name=(row["sender_name"] or "") if "sender_name" in keys else "",
            name=row["name"] or "",
            initial_trigger=row["initial_trigger"] or "immediate",
            initial_wait_days=row["initial_wait_days"] or 0,
            created_at=row["created_at"] or "",
            updated_at=row["updated_at"] or "",
        )

