# backend/convozo/store.py

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
from psycopg2 import errorcodes

from convozo.db import get_db
from convozo.errors import AlreadyProcessed, StoreError
from convozo.models.creator import Creator, CreatorSettings, StripeAccount
from convozo.models.fulfillment import LedgerEntry, MessageRecord, NewCallBooking, NewMessage

logger = logging.getLogger("convozo.store")


class PostgresStore:
    """
    Raw-SQL access to the primary store.
    Every public method opens its own connection and closes it before returning,
    so nothing here is held across a call to Stripe.
    """

    def __init__(self, database_url: str, sslmode: str = "require", connect=get_db):
        self.database_url = database_url
        self.sslmode = sslmode
        self._connect = connect

    # -------------------------------------------------
    # CONNECTION HANDLING
    # -------------------------------------------------
    @contextmanager
    def _transaction(self) -> Iterator["psycopg2.extensions.cursor"]:
        try:
            conn = self._connect(self.database_url, self.sslmode)
        except RuntimeError as e:
            raise StoreError("Database unavailable") from e

        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: tuple) -> Optional[dict]:
        try:
            with self._transaction() as cur:
                cur.execute(sql, params)
                return cur.fetchone()
        except psycopg2.Error as e:
            logger.error("Store read failed: %s", e)
            raise StoreError("Database error") from e

    def ping(self) -> None:
        self._fetch_one("SELECT 1 AS ok", ())

    # -------------------------------------------------
    # CREATORS
    # -------------------------------------------------
    def get_active_creator_by_slug(self, slug: str) -> Optional[Creator]:
        row = self._fetch_one(
            """
            SELECT id::text AS id, display_name, slug, email, bio, profile_image_url, is_active
            FROM creators
            WHERE slug = %s AND is_active = TRUE
            """,
            (slug,),
        )
        return Creator(**row) if row else None

    def get_creator(self, creator_id: str) -> Optional[Creator]:
        row = self._fetch_one(
            """
            SELECT id::text AS id, display_name, slug, email, bio, profile_image_url, is_active
            FROM creators
            WHERE id = %s
            """,
            (creator_id,),
        )
        return Creator(**row) if row else None

    def get_creator_settings(self, creator_id: str) -> Optional[CreatorSettings]:
        row = self._fetch_one(
            """
            SELECT creator_id::text AS creator_id, message_price, call_price, call_duration,
                   calls_enabled, response_expectation, auto_reply_text
            FROM creator_settings
            WHERE creator_id = %s
            """,
            (creator_id,),
        )
        return CreatorSettings(**row) if row else None

    # -------------------------------------------------
    # STRIPE ACCOUNTS
    # -------------------------------------------------
    def get_stripe_account_for_creator(self, creator_id: str) -> Optional[StripeAccount]:
        row = self._fetch_one(
            """
            SELECT creator_id::text AS creator_id, stripe_account_id,
                   charges_enabled, payouts_enabled, details_submitted
            FROM stripe_accounts
            WHERE creator_id = %s
            """,
            (creator_id,),
        )
        return StripeAccount(**row) if row else None

    def insert_stripe_account(self, creator_id: str, stripe_account_id: str) -> StripeAccount:
        """
        Create the empty account row. If a concurrent provisioning call won the
        race the existing row is returned instead.
        """
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    INSERT INTO stripe_accounts (
                        creator_id, stripe_account_id,
                        charges_enabled, payouts_enabled, details_submitted, onboarding_completed
                    )
                    VALUES (%s, %s, FALSE, FALSE, FALSE, FALSE)
                    ON CONFLICT (creator_id) DO NOTHING
                    """,
                    (creator_id, stripe_account_id),
                )
        except psycopg2.Error as e:
            logger.error("Insert stripe account failed creator=%s: %s", creator_id, e)
            raise StoreError("Database error") from e

        account = self.get_stripe_account_for_creator(creator_id)
        if account is None:
            raise StoreError("Stripe account row missing after insert")
        return account

    def update_stripe_account_flags(
        self,
        stripe_account_id: str,
        charges_enabled: bool,
        payouts_enabled: bool,
        details_submitted: bool,
    ) -> bool:
        """Overwrite capability flags. Returns False when no row matched."""
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    UPDATE stripe_accounts
                    SET charges_enabled = %s,
                        payouts_enabled = %s,
                        details_submitted = %s,
                        onboarding_completed = (%s AND %s),
                        updated_at = NOW()
                    WHERE stripe_account_id = %s
                    """,
                    (
                        charges_enabled,
                        payouts_enabled,
                        details_submitted,
                        details_submitted,
                        charges_enabled,
                        stripe_account_id,
                    ),
                )
                return cur.rowcount > 0
        except psycopg2.Error as e:
            logger.error("Update stripe account failed account=%s: %s", stripe_account_id, e)
            raise StoreError("Database error") from e

    # -------------------------------------------------
    # FULFILLMENT (LEDGER ROW IS THE IDEMPOTENCY FENCE)
    # -------------------------------------------------
    def is_session_processed(self, session_id: str) -> bool:
        row = self._fetch_one(
            """
            SELECT
                EXISTS (SELECT 1 FROM payments WHERE stripe_checkout_session_id = %s)
                OR EXISTS (SELECT 1 FROM call_bookings WHERE stripe_checkout_session_id = %s)
                AS processed
            """,
            (session_id, session_id),
        )
        return bool(row and row["processed"])

    def find_fulfillment_by_session(self, session_id: str) -> Optional[str]:
        """Returns 'message', 'call_booking' or None."""
        row = self._fetch_one(
            """
            SELECT CASE
                WHEN p.message_id IS NOT NULL THEN 'message'
                ELSE 'call_booking'
            END AS kind
            FROM payments p
            WHERE p.stripe_checkout_session_id = %s
            UNION ALL
            SELECT 'call_booking' AS kind
            FROM call_bookings c
            WHERE c.stripe_checkout_session_id = %s
            LIMIT 1
            """,
            (session_id, session_id),
        )
        return row["kind"] if row else None

    def fulfill_message(self, message: NewMessage, ledger: LedgerEntry) -> str:
        """
        Insert the message and its ledger row in one transaction.
        Returns the new message id.
        """
        with self._fulfillment(ledger.stripe_checkout_session_id) as cur:
            cur.execute(
                """
                INSERT INTO messages (
                    creator_id, sender_name, sender_email, sender_instagram,
                    message_content, amount_paid, message_type
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING id::text AS id
                """,
                (
                    message.creator_id,
                    message.sender_name,
                    message.sender_email,
                    message.sender_instagram,
                    message.message_content,
                    message.amount_paid,
                    message.message_type,
                ),
            )
            message_id = cur.fetchone()["id"]
            self._insert_ledger(cur, ledger, message_id=message_id)
        return message_id

    def fulfill_call_booking(self, booking: NewCallBooking, ledger: LedgerEntry) -> str:
        """
        Insert the call booking and its ledger row in one transaction.
        Returns the new booking id.
        """
        with self._fulfillment(ledger.stripe_checkout_session_id) as cur:
            cur.execute(
                """
                INSERT INTO call_bookings (
                    creator_id, booker_name, booker_email, booker_instagram,
                    duration, amount_paid, status, call_notes,
                    stripe_checkout_session_id, stripe_payment_intent_id
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id::text AS id
                """,
                (
                    booking.creator_id,
                    booking.booker_name,
                    booking.booker_email,
                    booking.booker_instagram,
                    booking.duration,
                    booking.amount_paid,
                    booking.status,
                    booking.call_notes,
                    booking.stripe_checkout_session_id,
                    booking.stripe_payment_intent_id,
                ),
            )
            booking_id = cur.fetchone()["id"]
            self._insert_ledger(cur, ledger, call_booking_id=booking_id)
        return booking_id

    @contextmanager
    def _fulfillment(self, session_id: str) -> Iterator["psycopg2.extensions.cursor"]:
        try:
            with self._transaction() as cur:
                yield cur
        except psycopg2.Error as e:
            if getattr(e, "pgcode", None) == errorcodes.UNIQUE_VIOLATION:
                logger.info("Concurrent delivery lost the race session=%s", session_id)
                raise AlreadyProcessed(session_id) from e
            logger.error("Fulfillment write failed session=%s: %s", session_id, e)
            raise StoreError("Database error while writing fulfillment") from e

    @staticmethod
    def _insert_ledger(cur, ledger: LedgerEntry, message_id=None, call_booking_id=None) -> None:
        cur.execute(
            """
            INSERT INTO payments (
                creator_id, message_id, call_booking_id,
                stripe_checkout_session_id, stripe_payment_intent_id,
                amount, platform_fee, creator_amount, status, sender_email
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                ledger.creator_id,
                message_id,
                call_booking_id,
                ledger.stripe_checkout_session_id,
                ledger.stripe_payment_intent_id,
                ledger.amount,
                ledger.platform_fee,
                ledger.creator_amount,
                ledger.status,
                ledger.sender_email,
            ),
        )

    # -------------------------------------------------
    # MESSAGES (CREATOR SIDE)
    # -------------------------------------------------
    def get_message(self, message_id: str) -> Optional[MessageRecord]:
        row = self._fetch_one(
            """
            SELECT id::text AS id, creator_id::text AS creator_id,
                   sender_name, sender_email, sender_instagram, message_content,
                   amount_paid, message_type, is_handled, reply_content, replied_at, created_at
            FROM messages
            WHERE id = %s
            """,
            (message_id,),
        )
        return MessageRecord(**row) if row else None

    def record_reply(self, message_id: str, reply_content: str, replied_at) -> bool:
        return self._update_message(
            """
            UPDATE messages
            SET reply_content = %s, replied_at = %s, is_handled = TRUE, updated_at = NOW()
            WHERE id = %s
            """,
            (reply_content, replied_at, message_id),
        )

    def mark_message_handled(self, message_id: str) -> bool:
        return self._update_message(
            "UPDATE messages SET is_handled = TRUE, updated_at = NOW() WHERE id = %s",
            (message_id,),
        )

    def _update_message(self, sql: str, params: tuple) -> bool:
        try:
            with self._transaction() as cur:
                cur.execute(sql, params)
                return cur.rowcount > 0
        except psycopg2.Error as e:
            logger.error("Message update failed: %s", e)
            raise StoreError("Database error") from e
