"""Record store providers (files, chunk rows, caller profiles).

SQLiteRecordStore keeps everything in data/docingest.db.
"""

from docingest.providers.record_store.sqlite_record_store import SQLiteRecordStore

__all__ = ["SQLiteRecordStore"]
