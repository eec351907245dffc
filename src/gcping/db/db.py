import os
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import ParseResult, urlparse

from peewee import (
    Database as PeeweeDatabase,
    PostgresqlDatabase,
    Proxy,
    SqliteDatabase,
)

from gcping.core.utils import setup_logger

logger = setup_logger(name="db.db")

DEFAULT_MIGRATE_DIR = Path(__file__).resolve().parents[3] / "migrations"


class DatabaseInitializationError(Exception):
    """Custom exception for database initialization errors"""

    pass


class Database:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.initialized = False
            cls._instance.proxy = Proxy()
        return cls._instance

    def init_db(self, db_url: str, migrate_dir: str | Path | None = None):
        """
        Initialize the database connection and bring the schema up to date.

        Args:
            db_url: Database URL string (sqlite:///path or postgresql://...)
            migrate_dir: Directory holding peewee-migrate migrations
        Raises:
            DatabaseInitializationError: If database initialization fails
            ValueError: If database scheme is unsupported
        """
        logger.info(f"Initializing database with URL: {db_url}")
        parsed_url = urlparse(db_url)

        if parsed_url.scheme == "sqlite":
            database = self._open_sqlite(parsed_url)
        elif parsed_url.scheme == "postgresql":
            database = self._open_postgresql(parsed_url)
        else:
            error_msg = "Unsupported database scheme. Use 'sqlite' or 'postgresql'."
            logger.error(error_msg)
            raise ValueError(error_msg)

        self.proxy.initialize(database)
        self.db = database
        self.initialized = True

        self.run_migrations(migrate_dir or DEFAULT_MIGRATE_DIR)

    def _open_sqlite(self, parsed_url: ParseResult) -> PeeweeDatabase:
        path = parsed_url.path[1:] if parsed_url.path.startswith("/") else parsed_url.path
        self._ensure_sqlite_directory(path)
        # Region workers write from several threads
        pragmas = {
            "foreign_keys": 1,
            "journal_mode": "wal",
            "busy_timeout": 10000,
        }
        try:
            database = SqliteDatabase(path, pragmas=pragmas)
        except Exception as e:
            error_msg = f"Failed to initialize SQLite database: {e!s}"
            logger.error(error_msg)
            raise DatabaseInitializationError(error_msg) from e
        logger.info(f"Initialized SQLite database at: {path}")
        return database

    def _open_postgresql(self, parsed_url: ParseResult) -> PeeweeDatabase:
        try:
            database = PostgresqlDatabase(
                database=parsed_url.path.lstrip("/"),
                user=parsed_url.username,
                password=parsed_url.password,
                host=parsed_url.hostname,
                port=parsed_url.port or 5432,
            )
        except Exception as e:
            error_msg = f"Failed to initialize PostgreSQL database: {e!s}"
            logger.error(error_msg)
            raise DatabaseInitializationError(error_msg) from e
        logger.info(f"Initialized PostgreSQL database at: {parsed_url.hostname}")
        return database

    def run_migrations(self, migrate_dir: str | Path) -> None:
        from peewee_migrate import Router

        try:
            router = Router(self.db, migrate_dir=str(migrate_dir))
            router.run()
        except Exception as e:
            error_msg = f"Error running migrations from {migrate_dir}: {e!s}"
            logger.error(error_msg)
            raise DatabaseInitializationError(error_msg) from e
        logger.info("Database migrations completed successfully")

    def _ensure_sqlite_directory(self, path: str) -> None:
        directory = os.path.dirname(path)
        if not directory:
            return
        try:
            Path(directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            error_msg = f"Failed to create SQLite directory: {e!s}"
            logger.error(error_msg)
            raise DatabaseInitializationError(error_msg) from e

    @contextmanager
    def connection(self):
        if not self.initialized:
            raise RuntimeError("Database not initialized. Call init_db first.")

        # Connections are per thread; reuse one that is already open
        if not self.db.is_closed():
            yield
        else:
            try:
                self.db.connect()
                yield
            finally:
                if not self.db.is_closed():
                    self.db.close()

    def close(self) -> None:
        if self.initialized and not self.db.is_closed():
            self.db.close()


db_instance = Database()
