"""
Append-only JSONL journal for news items, pools, stakes and settlements.

Provides schema-validated atomic appends and filtered reads. The in-memory
engine state can always be rebuilt by replaying these files in order.
"""

import json
import os
import fcntl
from pathlib import Path
from typing import Dict, List, Optional, Any, Callable

import jsonschema

from .errors import InvalidRecord, JournalError


JOURNAL_DIR = Path("data/journal")
SCHEMA_DIR = Path(__file__).resolve().parent.parent.parent / "config" / "schemas"

NEWS_FILE = "news.jsonl"
POOLS_FILE = "pools.jsonl"
STAKES_FILE = "stakes.jsonl"
SETTLEMENTS_FILE = "settlements.jsonl"
NEWS_RESOLUTIONS_FILE = "news_resolutions.jsonl"

# record_type -> (journal file, schema file)
RECORD_TYPES = {
    "news": (NEWS_FILE, "news_item.schema.json"),
    "pool": (POOLS_FILE, "pool.schema.json"),
    "stake": (STAKES_FILE, "pool_stake.schema.json"),
    "settlement": (SETTLEMENTS_FILE, "settlement.schema.json"),
    "news_resolution": (NEWS_RESOLUTIONS_FILE, "news_resolution.schema.json"),
}

_schema_cache: Dict[str, Dict[str, Any]] = {}


def load_schema(record_type: str, schema_dir: Path = SCHEMA_DIR) -> Dict[str, Any]:
    """
    Load the JSON schema for a record type.

    Raises:
        JournalError: If the record type is unknown or the schema can't be read
    """
    if record_type not in RECORD_TYPES:
        raise JournalError(f"Unknown record type: {record_type}")

    schema_path = schema_dir / RECORD_TYPES[record_type][1]
    key = str(schema_path)
    if key not in _schema_cache:
        try:
            with open(schema_path) as f:
                _schema_cache[key] = json.load(f)
        except (IOError, json.JSONDecodeError) as e:
            raise JournalError(f"Failed to load schema {schema_path}: {e}")
    return _schema_cache[key]


def validate_record(record: Dict[str, Any], record_type: str) -> None:
    """
    Validate a record against its JSON schema.

    Args:
        record: Record dictionary, including record_type
        record_type: Key into RECORD_TYPES

    Raises:
        InvalidRecord: If the record does not match the schema
    """
    schema = load_schema(record_type)
    try:
        jsonschema.validate(record, schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else ""
        where = f" at {path}" if path else ""
        raise InvalidRecord(f"Invalid {record_type} record{where}: {e.message}")


def ensure_journal_dir(journal_dir: Path = JOURNAL_DIR) -> None:
    """Create journal directory if it doesn't exist."""
    journal_dir.mkdir(parents=True, exist_ok=True)


def append_record(file_path: Path, record: Dict[str, Any]) -> None:
    """
    Atomically append a record to a JSONL file.

    Uses file locking to ensure safe concurrent writes.

    Args:
        file_path: Path to JSONL file
        record: Record dictionary to append

    Raises:
        JournalError: If append fails
    """
    ensure_journal_dir(file_path.parent)

    try:
        # Serialize first to catch JSON errors before touching file
        line = json.dumps(record, ensure_ascii=False, sort_keys=True) + "\n"

        with open(file_path, 'a') as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    except (IOError, OSError) as e:
        raise JournalError(f"Failed to append record: {e}")
    except (TypeError, ValueError) as e:
        raise JournalError(f"Failed to serialize record: {e}")


def read_records(
    file_path: Path,
    filter_fn: Optional[Callable[[Dict[str, Any]], bool]] = None
) -> List[Dict[str, Any]]:
    """
    Read all records from a JSONL file, optionally filtered.

    Args:
        file_path: Path to JSONL file
        filter_fn: Optional predicate function to filter records

    Returns:
        List of matching record dictionaries, in append order

    Raises:
        JournalError: If read fails
    """
    if not file_path.exists():
        return []

    records = []
    try:
        with open(file_path, 'r') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError as e:
                    raise JournalError(f"Invalid JSON in {file_path.name} line {line_num}: {e}")
                if filter_fn is None or filter_fn(record):
                    records.append(record)
    except IOError as e:
        raise JournalError(f"Failed to read journal: {e}")

    return records


class Journal:
    """
    Typed access to the journal files in one directory.

    Each append stamps record_type and validates against the matching
    schema before anything is written.
    """

    def __init__(self, journal_dir: Path = JOURNAL_DIR):
        self.journal_dir = Path(journal_dir)

    def path_for(self, record_type: str) -> Path:
        if record_type not in RECORD_TYPES:
            raise JournalError(f"Unknown record type: {record_type}")
        return self.journal_dir / RECORD_TYPES[record_type][0]

    def append(self, record_type: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and append a record.

        Returns:
            The record as written (with record_type)

        Raises:
            InvalidRecord: If the record fails schema validation
            JournalError: If the write fails
        """
        stamped = dict(record)
        stamped["record_type"] = record_type
        validate_record(stamped, record_type)
        append_record(self.path_for(record_type), stamped)
        return stamped

    def read(
        self,
        record_type: str,
        filter_fn: Optional[Callable[[Dict[str, Any]], bool]] = None
    ) -> List[Dict[str, Any]]:
        return read_records(self.path_for(record_type), filter_fn)

    def get_news(self) -> List[Dict[str, Any]]:
        return self.read("news")

    def get_pools(self, news_id: Optional[str] = None) -> List[Dict[str, Any]]:
        def filter_fn(r: Dict[str, Any]) -> bool:
            return not news_id or r.get("news_id") == news_id

        return self.read("pool", filter_fn)

    def get_stakes(self, pool_id: Optional[str] = None) -> List[Dict[str, Any]]:
        def filter_fn(r: Dict[str, Any]) -> bool:
            return not pool_id or r.get("pool_id") == pool_id

        return self.read("stake", filter_fn)

    def get_settlements(self, pool_id: Optional[str] = None) -> List[Dict[str, Any]]:
        def filter_fn(r: Dict[str, Any]) -> bool:
            return not pool_id or r.get("pool_id") == pool_id

        return self.read("settlement", filter_fn)

    def get_news_resolutions(self) -> List[Dict[str, Any]]:
        return self.read("news_resolution")
