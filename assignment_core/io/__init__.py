"""Persistence and dataset I/O.

Public API:
    SqliteStore(db_path)          -- SQLite-backed AssignmentStore
    load_dataset(path)            -- read a JSON dataset file
    import_dataset(store, data)   -- upsert a dataset into a store
    to_jsonable(value)            -- domain objects -> JSON-ready values
"""

from .mapping import to_jsonable
from .reader import import_dataset, load_dataset, load_into_store
from .sqlite_store import SqliteStore

__all__ = [
    "SqliteStore",
    "import_dataset",
    "load_dataset",
    "load_into_store",
    "to_jsonable",
]
