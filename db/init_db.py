"""
db/init_db.py
-------------
Creates the database schema (tables) if they do not already exist.
Run this module directly to initialize a fresh database:
    python -m db.init_db
"""

from db.connection import get_connection, release_connection
from utils.logger import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
-- Node connections: configured phoenixd backends, exactly one active
CREATE TABLE IF NOT EXISTS node_connections (
    id              SERIAL PRIMARY KEY,
    name            VARCHAR(100) NOT NULL,
    url             TEXT NOT NULL,
    password        TEXT NOT NULL DEFAULT '',
    is_active       BOOLEAN NOT NULL DEFAULT FALSE,
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

-- Contacts and their saved payment addresses
CREATE TABLE IF NOT EXISTS contacts (
    id              SERIAL PRIMARY KEY,
    name            VARCHAR(100) NOT NULL,
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS contact_addresses (
    id              SERIAL PRIMARY KEY,
    contact_id      INT NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
    address         TEXT NOT NULL,
    type            VARCHAR(30) NOT NULL
        CHECK (type IN ('lightning_address', 'bolt12_offer', 'lnurl', 'node_id', 'bitcoin_address'))
);

CREATE TABLE IF NOT EXISTS payment_categories (
    id              SERIAL PRIMARY KEY,
    name            VARCHAR(50) UNIQUE NOT NULL
);

-- Recurring payments: standing payment orders
CREATE TABLE IF NOT EXISTS recurring_payments (
    id              SERIAL PRIMARY KEY,
    contact_id      INT NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
    address_id      INT NOT NULL,
    connection_id   INT REFERENCES node_connections(id) ON DELETE SET NULL,
    amount_sat      BIGINT NOT NULL CHECK (amount_sat > 0),
    frequency       VARCHAR(20) NOT NULL CHECK (frequency IN (
                        'every_minute', 'every_5_minutes', 'every_15_minutes',
                        'every_30_minutes', 'hourly', 'daily', 'weekly', 'monthly')),
    day_of_week     SMALLINT CHECK (day_of_week BETWEEN 0 AND 6),
    day_of_month    SMALLINT CHECK (day_of_month BETWEEN 1 AND 31),
    time_of_day     VARCHAR(5) NOT NULL DEFAULT '09:00',
    note            TEXT,
    category_id     INT REFERENCES payment_categories(id) ON DELETE SET NULL,
    status          VARCHAR(10) NOT NULL DEFAULT 'active'
                        CHECK (status IN ('active', 'paused', 'cancelled')),
    next_run_at     TIMESTAMPTZ NOT NULL,
    last_run_at     TIMESTAMPTZ,
    last_error      TEXT,
    total_paid      BIGINT NOT NULL DEFAULT 0,
    payment_count   INT NOT NULL DEFAULT 0,
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

-- Execution history: one row per attempt, append-only
CREATE TABLE IF NOT EXISTS recurring_payment_executions (
    id                      SERIAL PRIMARY KEY,
    recurring_payment_id    INT NOT NULL REFERENCES recurring_payments(id) ON DELETE CASCADE,
    status                  VARCHAR(10) NOT NULL CHECK (status IN ('success', 'failed')),
    amount_sat              BIGINT NOT NULL,
    payment_id              TEXT,
    payment_hash            TEXT,
    error_message           TEXT,
    executed_at             TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

-- Payment metadata: links outgoing payments to contacts and categories
CREATE TABLE IF NOT EXISTS payment_metadata (
    id              SERIAL PRIMARY KEY,
    payment_id      TEXT UNIQUE NOT NULL,
    contact_id      INT REFERENCES contacts(id) ON DELETE SET NULL,
    note            TEXT,
    created_at      TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS payment_metadata_categories (
    payment_metadata_id INT NOT NULL REFERENCES payment_metadata(id) ON DELETE CASCADE,
    category_id         INT NOT NULL REFERENCES payment_categories(id) ON DELETE CASCADE,
    PRIMARY KEY (payment_metadata_id, category_id)
);

-- Indexes for faster queries
CREATE INDEX IF NOT EXISTS idx_recurring_due ON recurring_payments(next_run_at) WHERE status = 'active';
CREATE INDEX IF NOT EXISTS idx_executions_payment ON recurring_payment_executions(recurring_payment_id, executed_at DESC);
CREATE UNIQUE INDEX IF NOT EXISTS idx_single_active_connection ON node_connections(is_active) WHERE is_active;
"""


def create_tables() -> None:
    """
    Execute the schema SQL to create all tables.
    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn = get_connection()
    try:
        with conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        conn.commit()
        logger.info("Database schema initialized successfully.")
    except Exception as e:
        conn.rollback()
        logger.error(f"Failed to initialize schema: {e}")
        raise
    finally:
        release_connection(conn)


if __name__ == "__main__":
    from db.connection import init_pool
    init_pool()
    create_tables()
    print("Database schema created successfully.")
