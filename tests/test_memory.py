"""Tests for persisted fingerprint and SKU memory."""
import os
import sqlite3
import unittest
import tempfile
import shutil
from pathlib import Path
from unittest import mock

from dedupflow.engine.memory import (
    FINGERPRINTS,
    SKUS,
    InMemorySetStore,
    MemorySet,
    SqliteSetStore,
    to_signed,
    to_unsigned,
)
from dedupflow.utils.exceptions import CorruptMemoryError, PersistenceError, ValidationError


class TestMemorySet(unittest.TestCase):
    """Test MemorySet behaviour."""

    def test_insert_is_idempotent(self):
        memory = MemorySet(SKUS)
        self.assertTrue(memory.insert("A"))
        self.assertFalse(memory.insert("A"))
        self.assertEqual(len(memory), 1)
        self.assertEqual(memory.added, ["A"])

    def test_loaded_keys_are_not_added(self):
        memory = MemorySet(FINGERPRINTS, [1, 2])
        self.assertTrue(memory.contains(1))
        self.assertFalse(memory.insert(2))
        self.assertEqual(memory.added, [])

    def test_rejects_invalid_keys(self):
        with self.assertRaises(ValidationError):
            MemorySet(FINGERPRINTS).insert(-1)
        with self.assertRaises(ValidationError):
            MemorySet(FINGERPRINTS).insert(2 ** 64)
        with self.assertRaises(ValidationError):
            MemorySet(FINGERPRINTS).insert("123")
        with self.assertRaises(ValidationError):
            MemorySet(SKUS).insert("")

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            MemorySet("hashes")


class TestSignedMapping(unittest.TestCase):

    def test_round_trip_extremes(self):
        for value in (0, 1, 2 ** 63 - 1, 2 ** 63, 2 ** 64 - 1):
            with self.subTest(value=value):
                signed = to_signed(value)
                self.assertGreaterEqual(signed, -(2 ** 63))
                self.assertLess(signed, 2 ** 63)
                self.assertEqual(to_unsigned(signed), value)


class TestSqliteSetStore(unittest.TestCase):
    """Test SqliteSetStore persistence."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = Path(tempfile.mkdtemp())
        self.fp_path = self.test_dir / "memory.db"
        self.sku_path = self.test_dir / "skus.db"

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def test_missing_file_loads_empty(self):
        store = SqliteSetStore(self.fp_path, FINGERPRINTS)
        memory = store.load()
        self.assertEqual(len(memory), 0)
        self.assertFalse(self.fp_path.exists())

    def test_fingerprint_round_trip(self):
        store = SqliteSetStore(self.fp_path, FINGERPRINTS)
        values = {0, 42, 2 ** 63 - 1, 2 ** 63, 2 ** 64 - 1}
        store.save(MemorySet(FINGERPRINTS, values))

        self.assertEqual(set(store.load()), values)

    def test_sku_round_trip(self):
        store = SqliteSetStore(self.sku_path, SKUS)
        values = {"ABC-1", "b0x-ünïcode", "00123"}
        store.save(MemorySet(SKUS, values))

        self.assertEqual(set(store.load()), values)

    def test_save_replaces_whole_set(self):
        store = SqliteSetStore(self.sku_path, SKUS)
        store.save(MemorySet(SKUS, ["A"]))
        memory = store.load()
        memory.insert("B")
        store.save(memory)

        self.assertEqual(set(store.load()), {"A", "B"})

    def test_no_temp_files_left_behind(self):
        store = SqliteSetStore(self.sku_path, SKUS)
        store.save(MemorySet(SKUS, ["A"]))

        self.assertEqual(sorted(p.name for p in self.test_dir.iterdir()), ["skus.db"])

    def test_creates_parent_directory(self):
        store = SqliteSetStore(self.test_dir / "nested" / "memory.db", FINGERPRINTS)
        store.save(MemorySet(FINGERPRINTS, [7]))

        self.assertEqual(set(store.load()), {7})

    def test_garbage_file_is_corrupt_and_untouched(self):
        self.fp_path.write_bytes(b"12345\n67890\n")

        with self.assertRaises(CorruptMemoryError):
            SqliteSetStore(self.fp_path, FINGERPRINTS).load()
        self.assertEqual(self.fp_path.read_bytes(), b"12345\n67890\n")

    def test_empty_file_is_corrupt(self):
        self.fp_path.write_bytes(b"")

        with self.assertRaises(CorruptMemoryError):
            SqliteSetStore(self.fp_path, FINGERPRINTS).load()
        self.assertEqual(self.fp_path.read_bytes(), b"")

    def test_truncated_file_is_corrupt(self):
        store = SqliteSetStore(self.fp_path, FINGERPRINTS)
        store.save(MemorySet(FINGERPRINTS, range(5000)))
        data = self.fp_path.read_bytes()
        self.fp_path.write_bytes(data[: len(data) // 2])

        with self.assertRaises(CorruptMemoryError):
            store.load()

    def test_wrong_kind_is_corrupt(self):
        SqliteSetStore(self.sku_path, SKUS).save(MemorySet(SKUS, ["A"]))

        with self.assertRaises(CorruptMemoryError):
            SqliteSetStore(self.sku_path, FINGERPRINTS).load()

    def test_foreign_database_is_corrupt(self):
        conn = sqlite3.connect(str(self.fp_path))
        conn.execute("CREATE TABLE processed_files (hash TEXT)")
        conn.commit()
        conn.close()

        with self.assertRaises(CorruptMemoryError):
            SqliteSetStore(self.fp_path, FINGERPRINTS).load()

    def test_failed_replace_keeps_previous_file(self):
        store = SqliteSetStore(self.sku_path, SKUS)
        store.save(MemorySet(SKUS, ["A"]))

        with mock.patch("dedupflow.engine.memory.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(PersistenceError):
                store.save(MemorySet(SKUS, ["A", "B"]))

        self.assertEqual(set(store.load()), {"A"})
        self.assertEqual(sorted(p.name for p in self.test_dir.iterdir()), ["skus.db"])

    def test_failed_staging_keeps_previous_file(self):
        store = SqliteSetStore(self.sku_path, SKUS)
        store.save(MemorySet(SKUS, ["A"]))

        with mock.patch("dedupflow.engine.memory.os.fsync", side_effect=OSError("io error")):
            with self.assertRaises(PersistenceError):
                store.save(MemorySet(SKUS, ["A", "B"]))

        self.assertEqual(set(store.load()), {"A"})
        self.assertEqual(sorted(p.name for p in self.test_dir.iterdir()), ["skus.db"])

    def test_replace_retries_permission_errors(self):
        store = SqliteSetStore(self.sku_path, SKUS)
        real_replace = os.replace
        calls = []

        def flaky_replace(src, dst):
            calls.append(src)
            if len(calls) == 1:
                raise PermissionError("file in use")
            real_replace(src, dst)

        with mock.patch("dedupflow.engine.memory.os.replace", side_effect=flaky_replace), \
                mock.patch("dedupflow.utils.retry.time.sleep"):
            store.save(MemorySet(SKUS, ["A"]))

        self.assertEqual(len(calls), 2)
        self.assertEqual(set(store.load()), {"A"})

    def test_commit_syncs_parent_directory(self):
        store = SqliteSetStore(self.sku_path, SKUS)

        with mock.patch("dedupflow.engine.memory._sync_directory") as sync:
            store.save(MemorySet(SKUS, ["A"]))

        sync.assert_called_once_with(self.test_dir)

    def test_directory_sync_failure_does_not_fail_save(self):
        store = SqliteSetStore(self.sku_path, SKUS)
        real_open = os.open

        def no_directories(path, flags, *args):
            if os.path.isdir(path):
                raise PermissionError("directories cannot be opened")
            return real_open(path, flags, *args)

        with mock.patch("dedupflow.engine.memory.os.open", side_effect=no_directories):
            store.save(MemorySet(SKUS, ["A"]))

        self.assertEqual(set(store.load()), {"A"})

    def test_kind_mismatch_on_save(self):
        with self.assertRaises(PersistenceError):
            SqliteSetStore(self.sku_path, SKUS).save(MemorySet(FINGERPRINTS, [1]))

    def test_forget(self):
        store = SqliteSetStore(self.sku_path, SKUS)
        store.save(MemorySet(SKUS, ["A"]))

        self.assertTrue(store.forget())
        self.assertFalse(store.forget())
        self.assertEqual(len(store.load()), 0)


class TestInMemorySetStore(unittest.TestCase):

    def test_save_and_load(self):
        store = InMemorySetStore(SKUS, ["A"])
        memory = store.load()
        memory.insert("B")

        self.assertEqual(store.saved, frozenset({"A"}))
        store.save(memory)
        self.assertEqual(store.saved, frozenset({"A", "B"}))
        self.assertEqual(store.commits, 1)


if __name__ == "__main__":
    unittest.main()
