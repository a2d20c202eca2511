"""
Document shapes written to the vault.

Each exported post becomes one line of a daily ``.jsonl`` bucket file.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

EXPORT_SOURCE_TAG = "home_timeline"


class PostMetrics(BaseModel):
    """Engagement counters at capture time."""

    favorites: int = 0
    retweets: int = 0
    replies: int = 0
    quotes: int = 0
    bookmarks: int = 0
    views: Optional[int] = None


class PostContext(BaseModel):
    """Ids of posts this one replies to, reposts or quotes."""

    in_reply_to: Optional[str] = None
    retweeted_status: Optional[str] = None
    quoted_status: Optional[str] = None


class VaultDocument(BaseModel):
    """
    One exported post.

    Example:
        >>> doc = VaultDocument(id="1", created_at="2024-01-01T00:00:00.000Z")
        >>> doc.to_line()
        '{"id":"1","created_at":"2024-01-01T00:00:00.000Z",...}'
    """

    id: str
    created_at: str = Field(..., description="ISO-8601 UTC creation time")
    screen_name: str = ""
    name: str = ""
    text: str = ""
    url: str = ""
    media: list[str] = Field(default_factory=list)
    metrics: PostMetrics = Field(default_factory=PostMetrics)
    context: PostContext = Field(default_factory=PostContext)
    source: Literal["home_timeline"] = EXPORT_SOURCE_TAG

    def to_line(self) -> str:
        """Serialize as a single JSONL line (no trailing newline)."""
        return self.model_dump_json()
