"""
Export projection: stored posts to vault documents.
"""

from twexport.core.export.models import (
    EXPORT_SOURCE_TAG,
    PostContext,
    PostMetrics,
    VaultDocument,
)
from twexport.core.export.projection import bucket_key, group_by_bucket, to_vault_document

__all__ = [
    "EXPORT_SOURCE_TAG",
    "PostContext",
    "PostMetrics",
    "VaultDocument",
    "bucket_key",
    "group_by_bucket",
    "to_vault_document",
]
