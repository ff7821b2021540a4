import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .config import DB_PATH, logger


def init_database(db_path: Optional[Union[str, Path]] = None) -> None:
    """Initialize SQLite database with required tables."""
    conn = get_db_connection(db_path)
    cursor = conn.cursor()

    cursor.executescript(
        """
        CREATE TABLE IF NOT EXISTS vendor_configs (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            template_type TEXT NOT NULL DEFAULT 'custom',
            config_json TEXT NOT NULL,
            is_system INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            service_kind TEXT NOT NULL CHECK (service_kind IN ('asr', 'tts')),
            status TEXT NOT NULL DEFAULT 'queued'
                CHECK (status IN ('queued', 'running', 'completed', 'failed', 'paused')),
            vendor_ids_json TEXT NOT NULL,
            inputs_json TEXT NOT NULL,
            options_json TEXT,
            repetitions INTEGER NOT NULL DEFAULT 1,
            total INTEGER NOT NULL DEFAULT 0,
            completed INTEGER NOT NULL DEFAULT 0,
            failed INTEGER NOT NULL DEFAULT 0,
            current_json TEXT,
            error TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            started_at TIMESTAMP,
            completed_at TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS job_results (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            job_id TEXT NOT NULL,
            seq INTEGER NOT NULL,
            vendor_id TEXT NOT NULL,
            input_index INTEGER NOT NULL,
            run_index INTEGER NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('success', 'failed')),
            result_json TEXT NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (job_id) REFERENCES jobs (id),
            UNIQUE(job_id, seq)
        );

        CREATE INDEX IF NOT EXISTS idx_job_results_job ON job_results (job_id, seq);
        """
    )

    conn.commit()
    conn.close()
    logger.info(f"Database ready at {db_path or DB_PATH}")


def get_db_connection(db_path: Optional[Union[str, Path]] = None) -> sqlite3.Connection:
    """Get SQLite database connection."""
    return sqlite3.connect(str(db_path or DB_PATH))


def dict_factory(cursor, row) -> Dict[str, Any]:
    """Convert SQLite row to dictionary."""
    d: Dict[str, Any] = {}
    for idx, col in enumerate(cursor.description):
        d[col[0]] = row[idx]
    return d
