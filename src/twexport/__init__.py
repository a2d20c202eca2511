"""
twexport - capture timeline posts locally and export them to a note vault.

Captured posts and profiles live in a local SQLite store; a sync engine
appends them, deduplicated, to one JSONL file per day in the vault.
"""

__version__ = "0.3.0"

# Re-export core models for convenience
from twexport.core.config.models import TwexportConfig
from twexport.core.records import RecordKind
from twexport.core.store.database import CaptureDatabase

__all__ = ["CaptureDatabase", "RecordKind", "TwexportConfig", "__version__"]
