#!/usr/bin/env python3
"""
Unit tests for the shared blob containers.
Tests the in-memory, directory and PostgreSQL-backed implementations.
"""

import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import psycopg2

from energy_trends.config import Settings
from energy_trends.containers import (
    FileContainer,
    MemoryContainer,
    PostgresContainer,
    container_from_settings,
)
from energy_trends.errors import ContainerUnavailableError


def mock_connection(mock_connect):
    """Wire ``psycopg2.connect`` to a context-managed connection and cursor"""
    mock_conn = MagicMock()
    mock_cursor = MagicMock()
    mock_connect.return_value = mock_conn
    mock_conn.__enter__ = MagicMock(return_value=mock_conn)
    mock_conn.__exit__ = MagicMock(return_value=None)
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=None)
    return mock_conn, mock_cursor


class TestMemoryContainer(unittest.TestCase):
    """Test the in-process container"""

    def setUp(self):
        self.container = MemoryContainer()

    def test_write_and_read(self):
        self.container.write("today-energy.json", b"{}")
        self.assertEqual(self.container.read("today-energy.json"), b"{}")

    def test_read_missing(self):
        self.assertIsNone(self.container.read("missing.json"))

    def test_write_replaces(self):
        self.container.write("a", b"1")
        self.container.write("a", b"2")
        self.assertEqual(self.container.read("a"), b"2")

    def test_delete_is_idempotent(self):
        self.container.write("a", b"1")
        self.container.delete("a")
        self.container.delete("a")
        self.assertIsNone(self.container.read("a"))


class TestFileContainer(unittest.TestCase):
    """Test the directory-backed container"""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.directory = os.path.join(self._tmp.name, "group")
        self.container = FileContainer(self.directory)

    def tearDown(self):
        self._tmp.cleanup()

    def test_creates_directory(self):
        self.assertTrue(os.path.isdir(self.directory))

    def test_write_leaves_no_temp_files(self):
        self.container.write("projection-state.json", b'{"a": 1}')
        self.container.write("projection-state.json", b'{"a": 2}')

        self.assertEqual(os.listdir(self.directory), ["projection-state.json"])
        self.assertEqual(self.container.read("projection-state.json"), b'{"a": 2}')

    def test_read_missing(self):
        self.assertIsNone(self.container.read("weekday-average-3.json"))

    def test_delete(self):
        self.container.write("a", b"1")
        self.container.delete("a")
        self.container.delete("a")
        self.assertIsNone(self.container.read("a"))

    def test_missing_directory_raises(self):
        container = FileContainer(os.path.join(self._tmp.name, "nope"), create=False)

        with self.assertRaises(ContainerUnavailableError):
            container.read("a")
        with self.assertRaises(ContainerUnavailableError):
            container.write("a", b"1")


class TestPostgresContainer(unittest.TestCase):
    """Test the database-backed container"""

    DB_PARAMS = {"host": "localhost", "database": "energy_trends"}

    @patch('psycopg2.connect')
    def test_table_creation(self, mock_connect):
        """CREATE TABLE runs on init"""
        _, mock_cursor = mock_connection(mock_connect)

        PostgresContainer(self.DB_PARAMS)

        calls = [str(call) for call in mock_cursor.execute.call_args_list]
        self.assertTrue(any('CREATE TABLE IF NOT EXISTS energy_cache_blobs' in call for call in calls))

    @patch('psycopg2.connect')
    def test_write_upserts(self, mock_connect):
        mock_conn, mock_cursor = mock_connection(mock_connect)
        container = PostgresContainer(self.DB_PARAMS)

        container.write("today-energy.json", b"{}")

        insert_calls = [call for call in mock_cursor.execute.call_args_list
                        if 'INSERT INTO energy_cache_blobs' in str(call)]
        self.assertEqual(len(insert_calls), 1)
        self.assertIn('ON CONFLICT (name)', str(insert_calls[0]))
        self.assertIn('today-energy.json', str(insert_calls[0]))
        mock_conn.commit.assert_called()

    @patch('psycopg2.connect')
    def test_read_returns_bytes(self, mock_connect):
        _, mock_cursor = mock_connection(mock_connect)
        mock_cursor.fetchone.return_value = (memoryview(b'{"version": 1}'),)
        container = PostgresContainer(self.DB_PARAMS)

        self.assertEqual(container.read("today-energy.json"), b'{"version": 1}')

    @patch('psycopg2.connect')
    def test_read_missing(self, mock_connect):
        _, mock_cursor = mock_connection(mock_connect)
        mock_cursor.fetchone.return_value = None
        container = PostgresContainer(self.DB_PARAMS)

        self.assertIsNone(container.read("today-energy.json"))

    @patch('psycopg2.connect')
    def test_delete(self, mock_connect):
        _, mock_cursor = mock_connection(mock_connect)
        container = PostgresContainer(self.DB_PARAMS)

        container.delete("projection-state.json")

        delete_calls = [call for call in mock_cursor.execute.call_args_list
                        if 'DELETE FROM energy_cache_blobs' in str(call)]
        self.assertEqual(len(delete_calls), 1)

    @patch('psycopg2.connect')
    def test_database_unavailable(self, mock_connect):
        """Init survives a dead database; reads and writes raise the container error"""
        mock_connect.side_effect = psycopg2.OperationalError("Database connection failed")

        container = PostgresContainer(self.DB_PARAMS)

        with self.assertRaises(ContainerUnavailableError):
            container.read("today-energy.json")
        with self.assertRaises(ContainerUnavailableError):
            container.write("today-energy.json", b"{}")


class TestContainerFromSettings(unittest.TestCase):

    def test_memory_backend(self):
        self.assertIsInstance(container_from_settings(Settings(cache_backend="memory")), MemoryContainer)

    def test_file_backend(self):
        with tempfile.TemporaryDirectory() as directory:
            container = container_from_settings(Settings(cache_backend="file", cache_dir=directory))
            self.assertIsInstance(container, FileContainer)
            self.assertEqual(container.directory, directory)

    @patch('psycopg2.connect')
    def test_postgres_backend(self, mock_connect):
        mock_connection(mock_connect)
        settings = Settings(cache_backend="postgres", db_params={"host": "db"})

        container = container_from_settings(settings)

        self.assertIsInstance(container, PostgresContainer)
        mock_connect.assert_called_with(host="db")


if __name__ == '__main__':
    unittest.main()
