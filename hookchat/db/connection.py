"""Database connection and schema management."""

import duckdb
from typing import Optional
from pathlib import Path
from ..utils.logger import get_logger


class DatabaseConnection:
    """DuckDB connection manager."""

    def __init__(self, db_path: str = "./data/hookchat.db"):
        """
        Initialize database connection.

        Args:
            db_path: Path to DuckDB database file, or ``:memory:``
        """
        self.db_path = db_path
        self.logger = get_logger(__name__)
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connect()
        self._init_schema()

    def _connect(self):
        """Connect to DuckDB database."""
        try:
            self.conn = duckdb.connect(self.db_path)
            self.logger.info(f"Connected to DuckDB at {self.db_path}")
        except Exception as e:
            self.logger.error(f"Failed to connect to DuckDB: {e}")
            raise

    def _init_schema(self):
        """Initialize database schema."""
        try:
            # One row per conversation aggregate; messages, attachments and the
            # agent binding live in JSON columns so an upsert is a single write.
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    owner VARCHAR NOT NULL,
                    id VARCHAR NOT NULL,
                    title VARCHAR NOT NULL,
                    agent JSON,
                    messages JSON NOT NULL,
                    attachments JSON NOT NULL,
                    is_archived BOOLEAN DEFAULT FALSE,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (owner, id)
                )
            """)

            self.logger.info("Database schema initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database schema: {e}")
            raise

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            self.logger.info("Database connection closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
