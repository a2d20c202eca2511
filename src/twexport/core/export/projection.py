"""
Projection of stored posts to vault documents.

Everything here is pure: no I/O, no clock, same input same output.
"""

from __future__ import annotations

from collections.abc import Iterable

from twexport.core.export.models import PostContext, PostMetrics, VaultDocument
from twexport.core.ordering import format_date_key, format_iso, parse_twitter_datetime
from twexport.core.records import (
    Record,
    dig,
    extract_display_name,
    extract_full_text,
    extract_post_media,
    extract_quoted_post,
    extract_retweeted_post,
    extract_screen_name,
    get_media_original_url,
    get_post_url,
)


def _count(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0


def _id_or_none(value: object) -> str | None:
    return str(value) if value not in (None, "") else None


def _views(post: Record) -> int | None:
    raw = dig(post, "views", "count")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def bucket_key(post: Record) -> str:
    """
    Bucket (UTC ``YYYY-MM-DD``) a post is exported into.

    Unparseable timestamps fall back to the epoch date, matching the
    fallback used for ``created_at``.
    """
    return format_date_key(parse_twitter_datetime(dig(post, "legacy", "created_at")))


def to_vault_document(post: Record) -> VaultDocument:
    """
    Project a stored post to its exported shape.

    An unparseable creation time is exported as the epoch rather than
    rejected.
    """
    legacy = post.get("legacy") or {}
    created = parse_twitter_datetime(legacy.get("created_at"))
    retweeted = extract_retweeted_post(post)
    quoted = extract_quoted_post(post)

    return VaultDocument(
        id=str(post.get("rest_id", "")),
        created_at=format_iso(created),
        screen_name=extract_screen_name(post),
        name=extract_display_name(post),
        text=extract_full_text(post),
        url=get_post_url(post),
        media=[url for url in map(get_media_original_url, extract_post_media(post)) if url],
        metrics=PostMetrics(
            favorites=_count(legacy.get("favorite_count")),
            retweets=_count(legacy.get("retweet_count")),
            replies=_count(legacy.get("reply_count")),
            quotes=_count(legacy.get("quote_count")),
            bookmarks=_count(legacy.get("bookmark_count")),
            views=_views(post),
        ),
        context=PostContext(
            in_reply_to=_id_or_none(legacy.get("in_reply_to_status_id_str")),
            retweeted_status=_id_or_none((retweeted or {}).get("rest_id")),
            quoted_status=_id_or_none((quoted or {}).get("rest_id")),
        ),
    )


def group_by_bucket(posts: Iterable[Record]) -> dict[str, list[VaultDocument]]:
    """Project posts and group them by bucket key, keeping input order."""
    buckets: dict[str, list[VaultDocument]] = {}
    for post in posts:
        buckets.setdefault(bucket_key(post), []).append(to_vault_document(post))
    return buckets
