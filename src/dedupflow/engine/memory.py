"""Persistent memory of seen fingerprints and SKUs using SQLite.

Each memory is a single SQLite file holding the full set. A run loads the
whole set into memory, mutates it there, and writes a fresh file next to the
old one which then atomically replaces it. The on-disk file is never updated
in place, so a crash at any point leaves either the previous or the new
complete set readable.
"""
import os
import sqlite3
import tempfile
from contextlib import closing
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from ..utils.exceptions import CorruptMemoryError, PersistenceError, ValidationError
from ..utils.logger import get_logger
from ..utils.retry import retry_with_backoff

logger = get_logger()

FINGERPRINTS = "fingerprints"
SKUS = "skus"
KINDS = (FINGERPRINTS, SKUS)
FORMAT_VERSION = "1"

_UINT64_LIMIT = 1 << 64
_INT64_LIMIT = 1 << 63

Key = Union[int, str]


def to_signed(value: int) -> int:
    """Map an unsigned 64-bit value onto SQLite's signed INTEGER range."""
    return value - _UINT64_LIMIT if value >= _INT64_LIMIT else value


def to_unsigned(value: int) -> int:
    return value + _UINT64_LIMIT if value < 0 else value


class MemorySet:
    """In-memory copy of a persisted set; keys are only ever added."""

    def __init__(self, kind: str, keys: Iterable[Key] = ()):
        if kind not in KINDS:
            raise ValueError(f"Unknown memory kind: {kind}")
        self.kind = kind
        self._keys = set()
        self._added: List[Key] = []
        for key in keys:
            self._check_key(key)
            self._keys.add(key)

    def contains(self, key: Key) -> bool:
        return key in self._keys

    def insert(self, key: Key) -> bool:
        """Add a key. Returns False when it was already present."""
        self._check_key(key)
        if key in self._keys:
            return False
        self._keys.add(key)
        self._added.append(key)
        return True

    @property
    def added(self) -> List[Key]:
        """Keys inserted since load, in insertion order."""
        return list(self._added)

    def __contains__(self, key) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[Key]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"MemorySet(kind={self.kind!r}, size={len(self._keys)}, added={len(self._added)})"

    def _check_key(self, key: Key) -> None:
        if self.kind == FINGERPRINTS:
            if isinstance(key, bool) or not isinstance(key, int) or not 0 <= key < _UINT64_LIMIT:
                raise ValidationError(f"Fingerprint must be an unsigned 64-bit int, got {key!r}")
        elif not isinstance(key, str) or not key:
            raise ValidationError(f"SKU must be a non-empty string, got {key!r}")


class SqliteSetStore:
    """File-backed store for one MemorySet."""

    def __init__(self, path: Union[str, Path], kind: str):
        if kind not in KINDS:
            raise ValueError(f"Unknown memory kind: {kind}")
        self.path = Path(path)
        self.kind = kind

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> MemorySet:
        """
        Load the persisted set.

        Returns:
            The stored set, or an empty one when the file does not exist

        Raises:
            CorruptMemoryError: If the file exists but cannot be read back
        """
        if not self.path.exists():
            logger.info(f"No {self.kind} memory at {self.path}, starting empty")
            return MemorySet(self.kind)

        # Read-only so a damaged file is never touched.
        uri = f"{self.path.resolve().as_uri()}?mode=ro"
        try:
            with closing(sqlite3.connect(uri, uri=True)) as conn:
                keys = self._read_keys(conn)
        except sqlite3.DatabaseError as e:
            raise CorruptMemoryError(f"Memory file {self.path} is unreadable: {e}") from e

        memory = MemorySet(self.kind, keys)
        logger.info(f"Loaded {len(memory)} {self.kind} from {self.path}")
        return memory

    def _read_keys(self, conn: sqlite3.Connection) -> List[Key]:
        cursor = conn.cursor()
        check = cursor.execute("PRAGMA quick_check").fetchone()
        if not check or check[0] != "ok":
            raise CorruptMemoryError(f"Memory file {self.path} failed integrity check: {check}")

        meta = dict(cursor.execute("SELECT name, value FROM meta").fetchall())
        if meta.get("kind") != self.kind:
            raise CorruptMemoryError(
                f"Memory file {self.path} holds {meta.get('kind')!r}, expected {self.kind!r}"
            )
        if meta.get("format_version") != FORMAT_VERSION:
            raise CorruptMemoryError(
                f"Memory file {self.path} has unsupported format {meta.get('format_version')!r}"
            )

        keys = []
        for (value,) in cursor.execute("SELECT key FROM keys"):
            if self.kind == FINGERPRINTS:
                if not isinstance(value, int):
                    raise CorruptMemoryError(f"Non-integer fingerprint {value!r} in {self.path}")
                keys.append(to_unsigned(value))
            else:
                if not isinstance(value, str) or not value:
                    raise CorruptMemoryError(f"Invalid SKU {value!r} in {self.path}")
                keys.append(value)
        return keys

    def prepare(self, memory: MemorySet) -> Path:
        """
        Write the full set to a temp file beside the destination.

        Args:
            memory: Set to persist

        Returns:
            Path of the staged file, to be passed to commit() or discard()

        Raises:
            PersistenceError: If the staged file cannot be written
        """
        if memory.kind != self.kind:
            raise PersistenceError(f"Cannot store {memory.kind} memory in a {self.kind} store")

        staged: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}-", suffix=".tmp", dir=str(self.path.parent)
            )
            os.close(fd)
            staged = Path(tmp_name)

            if self.kind == FINGERPRINTS:
                column = "INTEGER"
                rows = ((to_signed(key),) for key in sorted(memory))
            else:
                column = "TEXT"
                rows = ((key,) for key in sorted(memory))

            with closing(sqlite3.connect(str(staged))) as conn:
                cursor = conn.cursor()
                cursor.execute("CREATE TABLE meta (name TEXT PRIMARY KEY, value TEXT NOT NULL)")
                cursor.execute(f"CREATE TABLE keys (key {column} PRIMARY KEY) WITHOUT ROWID")
                cursor.executemany(
                    "INSERT INTO meta (name, value) VALUES (?, ?)",
                    [("kind", self.kind), ("format_version", FORMAT_VERSION)]
                )
                cursor.executemany("INSERT INTO keys (key) VALUES (?)", rows)
                conn.commit()

            with open(staged, "r+b") as f:
                os.fsync(f.fileno())
        except (sqlite3.Error, OSError) as e:
            if staged is not None:
                self.discard(staged)
            raise PersistenceError(f"Failed to write {self.kind} memory for {self.path}: {e}") from e

        logger.debug(f"Staged {len(memory)} {self.kind} at {staged}")
        return staged

    def commit(self, staged: Path) -> None:
        """Atomically replace the memory file with a staged one."""
        try:
            _replace(staged, self.path)
        except OSError as e:
            self.discard(staged)
            raise PersistenceError(f"Failed to replace {self.path}: {e}") from e
        _sync_directory(self.path.parent)
        logger.debug(f"Committed {self.kind} memory to {self.path}")

    def discard(self, staged: Path) -> None:
        try:
            staged.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove staged file {staged}: {e}")

    def save(self, memory: MemorySet) -> None:
        self.commit(self.prepare(memory))

    def forget(self) -> bool:
        """Delete the memory file. Returns False when there was nothing to delete."""
        if not self.path.exists():
            return False
        self.path.unlink()
        logger.info(f"Forgot {self.kind} memory at {self.path}")
        return True


@retry_with_backoff()
def _replace(source: Path, destination: Path) -> None:
    os.replace(source, destination)


def _sync_directory(directory: Path) -> None:
    """Flush a rename to disk. Best effort: Windows cannot open directories."""
    try:
        fd = os.open(str(directory), os.O_RDONLY)
    except OSError as e:
        logger.debug(f"Cannot open {directory} to sync it: {e}")
        return
    try:
        os.fsync(fd)
    except OSError as e:
        logger.debug(f"Could not sync directory {directory}: {e}")
    finally:
        os.close(fd)


class InMemorySetStore:
    """Store with the SqliteSetStore interface that keeps the set in memory."""

    def __init__(self, kind: str, keys: Iterable[Key] = ()):
        if kind not in KINDS:
            raise ValueError(f"Unknown memory kind: {kind}")
        self.kind = kind
        self.saved = frozenset(keys)
        self.commits = 0

    def exists(self) -> bool:
        return bool(self.saved)

    def load(self) -> MemorySet:
        return MemorySet(self.kind, self.saved)

    def prepare(self, memory: MemorySet) -> frozenset:
        if memory.kind != self.kind:
            raise PersistenceError(f"Cannot store {memory.kind} memory in a {self.kind} store")
        return frozenset(memory)

    def commit(self, staged: frozenset) -> None:
        self.saved = staged
        self.commits += 1

    def discard(self, staged: frozenset) -> None:
        pass

    def save(self, memory: MemorySet) -> None:
        self.commit(self.prepare(memory))

    def forget(self) -> bool:
        had_keys = bool(self.saved)
        self.saved = frozenset()
        return had_keys
