# backend/convozo/db_auto_migrate.py

import logging

import psycopg2

from convozo.db import get_db

logger = logging.getLogger("convozo.migrations")

# Applied in order on every startup; each statement must be re-runnable.
MIGRATIONS = [
    """
    CREATE TABLE IF NOT EXISTS creators (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL,
        email TEXT NOT NULL,
        display_name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE,
        bio TEXT,
        profile_image_url TEXT,
        instagram_username TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS creator_settings (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        creator_id UUID NOT NULL UNIQUE REFERENCES creators(id) ON DELETE CASCADE,
        message_price INTEGER NOT NULL CHECK (message_price > 0),
        call_price INTEGER,
        call_duration INTEGER,
        calls_enabled BOOLEAN NOT NULL DEFAULT FALSE,
        response_expectation TEXT,
        auto_reply_text TEXT,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        CONSTRAINT calls_require_price_and_duration CHECK (
            NOT calls_enabled
            OR (call_price IS NOT NULL AND call_price > 0
                AND call_duration IS NOT NULL AND call_duration > 0)
        )
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS stripe_accounts (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        creator_id UUID NOT NULL UNIQUE REFERENCES creators(id) ON DELETE CASCADE,
        stripe_account_id TEXT NOT NULL UNIQUE,
        charges_enabled BOOLEAN NOT NULL DEFAULT FALSE,
        payouts_enabled BOOLEAN NOT NULL DEFAULT FALSE,
        details_submitted BOOLEAN NOT NULL DEFAULT FALSE,
        onboarding_completed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        creator_id UUID NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
        sender_name TEXT NOT NULL,
        sender_email TEXT NOT NULL,
        sender_instagram TEXT,
        message_content TEXT NOT NULL CHECK (char_length(message_content) <= 1000),
        amount_paid INTEGER NOT NULL,
        message_type TEXT NOT NULL DEFAULT 'message' CHECK (message_type IN ('message', 'call')),
        is_handled BOOLEAN NOT NULL DEFAULT FALSE,
        reply_content TEXT,
        replied_at TIMESTAMP WITH TIME ZONE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS call_bookings (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        creator_id UUID NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
        booker_name TEXT NOT NULL,
        booker_email TEXT NOT NULL,
        booker_instagram TEXT NOT NULL,
        scheduled_at TIMESTAMP WITH TIME ZONE,
        duration INTEGER NOT NULL,
        amount_paid INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'confirmed', 'completed', 'cancelled')),
        call_notes TEXT,
        stripe_checkout_session_id TEXT UNIQUE,
        stripe_payment_intent_id TEXT,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        creator_id UUID NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
        message_id UUID REFERENCES messages(id) ON DELETE CASCADE,
        call_booking_id UUID REFERENCES call_bookings(id) ON DELETE CASCADE,
        stripe_checkout_session_id TEXT NOT NULL UNIQUE,
        stripe_payment_intent_id TEXT,
        amount INTEGER NOT NULL,
        platform_fee INTEGER NOT NULL,
        creator_amount INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'completed',
        sender_email TEXT NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        CONSTRAINT fee_split_conserves_amount CHECK (platform_fee + creator_amount = amount),
        CONSTRAINT funds_exactly_one_fulfillment CHECK (
            (message_id IS NOT NULL)::INTEGER + (call_booking_id IS NOT NULL)::INTEGER = 1
        )
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS availability_slots (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        creator_id UUID NOT NULL REFERENCES creators(id) ON DELETE CASCADE,
        day_of_week SMALLINT NOT NULL CHECK (day_of_week BETWEEN 0 AND 6),
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    ALTER TABLE payments ADD COLUMN IF NOT EXISTS call_booking_id UUID REFERENCES call_bookings(id) ON DELETE CASCADE;
    """,
    """
    CREATE INDEX IF NOT EXISTS messages_creator_id_idx ON messages (creator_id, created_at DESC);
    """,
    """
    CREATE INDEX IF NOT EXISTS call_bookings_creator_id_idx ON call_bookings (creator_id, created_at DESC);
    """,
]


def run_migrations(database_url: str, sslmode: str = "require") -> None:
    conn = None
    try:
        conn = get_db(database_url, sslmode)
        cur = conn.cursor()
        for sql in MIGRATIONS:
            cur.execute(sql)
        conn.commit()
        cur.close()
    except psycopg2.Error as e:
        logger.error("DB migration error: %s", e)
        if conn:
            conn.rollback()
        raise
    finally:
        if conn:
            conn.close()
