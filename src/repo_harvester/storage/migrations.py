"""Versioned schema migrations for the harvest store.

The schema version lives in SQLite's ``user_version`` pragma. Each migration
runs once, in order, inside its own transaction.
"""

from typing import List, Tuple

# (version, statements) - append only; never edit a released migration
MIGRATIONS: List[Tuple[int, List[str]]] = [
    (
        1,
        [
            """
            CREATE TABLE IF NOT EXISTS sub_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                identity TEXT NOT NULL UNIQUE,
                owning_entity TEXT NOT NULL,
                keyword TEXT,
                display_name TEXT,
                occurrence_count INTEGER NOT NULL DEFAULT 1,
                last_seen TEXT,
                ignored INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS checkpoints (
                keyword TEXT PRIMARY KEY,
                sub_ranges TEXT NOT NULL,
                current_sub_range_index INTEGER NOT NULL DEFAULT 0,
                current_entity_index INTEGER NOT NULL DEFAULT 0,
                total_entities_found INTEGER NOT NULL DEFAULT 0,
                last_updated TEXT NOT NULL
            )
            """,
        ],
    ),
    (
        2,
        [
            """
            CREATE TABLE IF NOT EXISTS processed_entities (
                identity TEXT PRIMARY KEY,
                keyword TEXT,
                sub_record_count INTEGER NOT NULL DEFAULT 0,
                processed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_sub_records_owning_entity
                ON sub_records (owning_entity)
            """,
        ],
    ),
]

LATEST_VERSION = MIGRATIONS[-1][0]
