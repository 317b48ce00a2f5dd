"""
Custom Mapping Store
Persists per-source mapping overrides ({source_name, mapping_rules}) in SQLite.
When the database cannot be opened, every call degrades to a logged no-op and
the mapper keeps working from memory.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional

import config

log = logging.getLogger('encore')

_sqlite_available = False
_db_path_override: Optional[str] = None


def _db_path() -> str:
    return _db_path_override or config.MAPPING_DB_PATH


def _get_conn():
    if not _sqlite_available:
        raise RuntimeError("SQLite not available")
    conn = sqlite3.connect(_db_path())
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Optional[str] = None) -> bool:
    """Create the custom_mappings table if needed. Returns True on success."""
    global _sqlite_available, _db_path_override
    if db_path is not None:
        _db_path_override = db_path
    try:
        conn = sqlite3.connect(_db_path())
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS custom_mappings (
                source_name TEXT PRIMARY KEY,
                mapping_rules TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)
        conn.commit()
        conn.close()
        _sqlite_available = True
    except sqlite3.Error as e:
        log.warning("Mapping store unavailable (%s): %s", _db_path(), e)
        _sqlite_available = False
    return _sqlite_available


def is_available() -> bool:
    return _sqlite_available


def load_custom_mappings() -> List[dict]:
    """All stored rows as [{source_name, mapping_rules}], oldest first."""
    if not _sqlite_available:
        return []
    try:
        conn = _get_conn()
        rows = conn.execute(
            "SELECT source_name, mapping_rules FROM custom_mappings ORDER BY updated_at"
        ).fetchall()
        conn.close()
    except sqlite3.Error as e:
        log.warning("Could not load custom mappings: %s", e)
        return []

    out = []
    for row in rows:
        try:
            rules = json.loads(row['mapping_rules'])
        except (TypeError, ValueError):
            log.warning("Skipping unreadable mapping rules for '%s'", row['source_name'])
            continue
        out.append({'source_name': row['source_name'], 'mapping_rules': rules})
    return out


def save_custom_mapping(source_name: str, mapping_rules: Dict[str, object]) -> bool:
    """Upsert the overrides for one source. Returns False when not persisted."""
    if not _sqlite_available:
        log.warning("Mapping store unavailable; '%s' mapping kept in memory only", source_name)
        return False
    try:
        conn = _get_conn()
        conn.execute(
            "INSERT INTO custom_mappings (source_name, mapping_rules, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(source_name) DO UPDATE SET mapping_rules = excluded.mapping_rules, "
            "updated_at = excluded.updated_at",
            (source_name, json.dumps(mapping_rules), datetime.now().isoformat()),
        )
        conn.commit()
        conn.close()
    except sqlite3.Error as e:
        log.warning("Could not save mapping for '%s': %s", source_name, e)
        return False
    return True


def delete_custom_mapping(source_name: str) -> bool:
    if not _sqlite_available:
        return False
    try:
        conn = _get_conn()
        cur = conn.execute("DELETE FROM custom_mappings WHERE source_name = ?", (source_name,))
        conn.commit()
        deleted = cur.rowcount > 0
        conn.close()
    except sqlite3.Error as e:
        log.warning("Could not delete mapping for '%s': %s", source_name, e)
        return False
    return deleted
