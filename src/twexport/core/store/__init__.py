"""
Local capture store.

Persists captured posts and profiles together with capture provenance
(which source observed which record, and in what order) in a versioned,
indexed SQLite database.

Main components:
- schema.py: table/index declarations and the version runner
- migrations.py: released upgrade routines
- database.py: CaptureDatabase, the store API
"""

from twexport.core.store.database import CaptureDatabase, sort_captures, sort_items
from twexport.core.store.models import Capture, CapturedItem, StoreCounts, capture_id
from twexport.core.store.schema import SCHEMA_VERSION, SCHEMA_VERSIONS, SchemaVersion

__all__ = [
    "Capture",
    "CaptureDatabase",
    "CapturedItem",
    "SCHEMA_VERSION",
    "SCHEMA_VERSIONS",
    "SchemaVersion",
    "StoreCounts",
    "capture_id",
    "sort_captures",
    "sort_items",
]
