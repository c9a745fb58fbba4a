"""
Shared Blob Containers
Byte blobs keyed by file name, shared between the app and the rendering host.
Every write replaces a key in one step so readers never see a partial value.
"""

import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import suppress
from typing import Dict, Optional

import psycopg2

from .errors import ContainerUnavailableError

logger = logging.getLogger(__name__)


class BlobContainer(ABC):
    """Key-value storage for cache records"""

    @abstractmethod
    def read(self, name: str) -> Optional[bytes]:
        """Return the blob stored under ``name`` or None when absent"""

    @abstractmethod
    def write(self, name: str, data: bytes) -> None:
        """Atomically replace the blob stored under ``name``"""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove ``name``; missing keys are ignored"""


class MemoryContainer(BlobContainer):
    """In-process container, one per test or per short-lived host"""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def read(self, name: str) -> Optional[bytes]:
        with self._lock:
            return self._blobs.get(name)

    def write(self, name: str, data: bytes) -> None:
        with self._lock:
            self._blobs[name] = bytes(data)

    def delete(self, name: str) -> None:
        with self._lock:
            self._blobs.pop(name, None)


class FileContainer(BlobContainer):
    """Directory-backed container; survives process restarts"""

    def __init__(self, directory: str, create: bool = True):
        self.directory = directory
        if create:
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                logger.error(f"Could not create cache directory {directory}: {e}")

    def _path(self, name: str) -> str:
        if not os.path.isdir(self.directory):
            raise ContainerUnavailableError(f"Cache directory not found: {self.directory}")
        return os.path.join(self.directory, name)

    def read(self, name: str) -> Optional[bytes]:
        path = self._path(name)
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ContainerUnavailableError(f"Failed to read {path}: {e}") from e

    def write(self, name: str, data: bytes) -> None:
        path = self._path(name)
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", suffix=".tmp", dir=self.directory)
        except OSError as e:
            raise ContainerUnavailableError(f"Failed to write {path}: {e}") from e

        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            # os.replace is atomic on POSIX and Windows for same-directory moves
            os.replace(tmp_path, path)
        except OSError as e:
            with suppress(OSError):
                os.unlink(tmp_path)
            raise ContainerUnavailableError(f"Failed to write {path}: {e}") from e

    def delete(self, name: str) -> None:
        path = self._path(name)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise ContainerUnavailableError(f"Failed to delete {path}: {e}") from e


class PostgresContainer(BlobContainer):
    """PostgreSQL-backed container for hosts that share a database instead of a disk"""

    def __init__(self, db_params: Dict):
        self.db_params = db_params
        self._ensure_table()

    def _get_connection(self):
        """Get database connection"""
        try:
            return psycopg2.connect(**self.db_params)
        except psycopg2.OperationalError as e:
            raise ContainerUnavailableError(f"Database unavailable: {e}") from e

    def _ensure_table(self):
        """Create blob table if it doesn't exist"""
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("""
                        CREATE TABLE IF NOT EXISTS energy_cache_blobs (
                            name VARCHAR(255) PRIMARY KEY,
                            payload BYTEA NOT NULL,
                            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                        )
                    """)
                    conn.commit()
                    logger.info("Energy cache blob table ensured")
        except (psycopg2.Error, ContainerUnavailableError) as e:
            logger.error(f"Failed to create energy cache blob table: {e}")

    def read(self, name: str) -> Optional[bytes]:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute(
                        "SELECT payload FROM energy_cache_blobs WHERE name = %s",
                        (name,)
                    )
                    row = cursor.fetchone()
        except psycopg2.Error as e:
            raise ContainerUnavailableError(f"Failed to read {name}: {e}") from e

        if row is None:
            return None
        return bytes(row[0])

    def write(self, name: str, data: bytes) -> None:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("""
                        INSERT INTO energy_cache_blobs (name, payload)
                        VALUES (%s, %s)
                        ON CONFLICT (name)
                        DO UPDATE SET payload = EXCLUDED.payload,
                                      updated_at = CURRENT_TIMESTAMP
                    """, (name, psycopg2.Binary(data)))
                    conn.commit()
        except psycopg2.Error as e:
            raise ContainerUnavailableError(f"Failed to write {name}: {e}") from e

    def delete(self, name: str) -> None:
        try:
            with self._get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("DELETE FROM energy_cache_blobs WHERE name = %s", (name,))
                    conn.commit()
        except psycopg2.Error as e:
            raise ContainerUnavailableError(f"Failed to delete {name}: {e}") from e


def container_from_settings(settings) -> BlobContainer:
    """Pick the container backend named by ``settings.cache_backend``"""
    if settings.cache_backend == "postgres":
        return PostgresContainer(settings.db_params)
    if settings.cache_backend == "memory":
        return MemoryContainer()
    return FileContainer(settings.cache_dir)
