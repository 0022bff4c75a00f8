"""
Recipient repository - CRUD operations for the recipients table.

Rows are returned in id order, which is registration order and therefore the
daily delivery order.
"""

from __future__ import annotations

from rsmnews.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from rsmnews.news.models import utc_now
from rsmnews.observability.logging import get_logger
from rsmnews.recipients.models import Recipient, RecipientStats

logger = get_logger(__name__)


class RecipientRepository:
    """
    Repository for Recipient CRUD operations.

    All methods use connection pooling and proper transaction handling.
    """

    @staticmethod
    @retry_on_db_lock()
    def upsert(
        phone: str,
        alternate_id: str | None = None,
        email: str | None = None,
        subscribed: bool = True,
    ) -> Recipient:
        """
        Create the recipient or update an existing one.

        alternate_id and email only overwrite stored values when given.

        Raises:
            ValueError: If phone is empty
        """
        if not phone:
            raise ValueError("phone is required")

        now = utc_now().isoformat()
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO recipients (phone, alternate_id, email, subscribed, is_paid, created_at, updated_at)
                VALUES (:phone, :alternate_id, :email, :subscribed, 0, :now, :now)
                ON CONFLICT(phone) DO UPDATE SET
                    alternate_id = COALESCE(excluded.alternate_id, recipients.alternate_id),
                    email = COALESCE(excluded.email, recipients.email),
                    subscribed = excluded.subscribed,
                    updated_at = excluded.updated_at
                """,
                {
                    "phone": phone,
                    "alternate_id": alternate_id,
                    "email": email,
                    "subscribed": int(subscribed),
                    "now": now,
                },
            )
            row = conn.execute("SELECT * FROM recipients WHERE phone = ?", (phone,)).fetchone()

        logger.info("Upserted recipient %s (subscribed=%s)", phone, subscribed)
        return Recipient.from_row(row)

    @staticmethod
    def get(phone: str) -> Recipient | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM recipients WHERE phone = ?", (phone,)).fetchone()
        return Recipient.from_row(row) if row else None

    @staticmethod
    @retry_on_db_lock()
    def set_subscribed(phone: str, subscribed: bool) -> bool:
        """
        Update the subscribed flag of an existing recipient.

        Returns:
            False when no recipient has that phone (nothing is created)
        """
        with db_transaction() as conn:
            cursor = conn.execute(
                "UPDATE recipients SET subscribed = ?, updated_at = ? WHERE phone = ?",
                (int(subscribed), utc_now().isoformat(), phone),
            )
            updated = cursor.rowcount > 0

        if updated:
            logger.info("Recipient %s subscribed=%s", phone, subscribed)
        return updated

    @staticmethod
    @retry_on_db_lock()
    def delete(phone: str) -> bool:
        """Remove a recipient. Returns False if none existed."""
        with db_transaction() as conn:
            cursor = conn.execute("DELETE FROM recipients WHERE phone = ?", (phone,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info("Deleted recipient %s", phone)
        return deleted

    @staticmethod
    def list_subscribed() -> list[Recipient]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM recipients WHERE subscribed = 1 ORDER BY id"
            ).fetchall()
        return [Recipient.from_row(row) for row in rows]

    @staticmethod
    def stats() -> RecipientStats:
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_users,
                    COALESCE(SUM(subscribed = 1), 0) AS active_subscribers,
                    COALESCE(SUM(is_paid = 1), 0) AS paid_users
                FROM recipients
                """
            ).fetchone()
        return RecipientStats(
            total_users=row["total_users"],
            active_subscribers=row["active_subscribers"],
            paid_users=row["paid_users"],
        )
