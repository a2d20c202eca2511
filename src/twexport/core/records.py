"""
Helpers for reading captured post and profile payloads.

Records are kept as the raw JSON objects the interceptor produced, so these
functions walk the nested GraphQL shapes tolerating gaps: any level may be
missing, and posts may be wrapped in a ``TweetWithVisibilityResults``
envelope.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from twexport.core.ordering import parse_twitter_datetime, to_epoch_ms

Record = dict[str, Any]

PRIVATE_FIELDS_KEY = "private_fields"
POST_URL_TEMPLATE = "https://x.com/{screen_name}/status/{rest_id}"


class RecordKind(str, Enum):
    """Kinds of records a capture can point at."""

    POST = "post"
    PROFILE = "profile"


def dig(data: Any, *path: str, default: Any = None) -> Any:
    """
    Walk nested dicts along ``path``, returning ``default`` on any miss.

    Example:
        >>> dig({"a": {"b": 1}}, "a", "b")
        1
        >>> dig({"a": None}, "a", "b", default="x")
        'x'
    """
    current = data
    for key in path:
        if not isinstance(current, dict):
            return default
        current = current.get(key)
        if current is None:
            return default
    return current


def unwrap_post(result: Any) -> Record | None:
    """Strip the visibility envelope some timeline entries carry."""
    if not isinstance(result, dict):
        return None
    if result.get("__typename") == "TweetWithVisibilityResults":
        inner = result.get("tweet")
        return inner if isinstance(inner, dict) else None
    return result


def has_payload(record: Any) -> bool:
    """A stored record is usable only if it carries a ``legacy`` block."""
    return isinstance(record, dict) and isinstance(record.get("legacy"), dict)


def extract_retweeted_post(post: Record) -> Record | None:
    return unwrap_post(dig(post, "legacy", "retweeted_status_result", "result"))


def extract_quoted_post(post: Record) -> Record | None:
    return unwrap_post(dig(post, "quoted_status_result", "result"))


def extract_post_author(post: Record) -> Record:
    return dig(post, "core", "user_results", "result", default={})


def extract_screen_name(post: Record) -> str:
    author = extract_post_author(post)
    return dig(author, "core", "screen_name") or dig(author, "legacy", "screen_name") or ""


def extract_display_name(post: Record) -> str:
    author = extract_post_author(post)
    return dig(author, "core", "name") or dig(author, "legacy", "name") or ""


def extract_full_text(post: Record) -> str:
    """Long-form note text when present, otherwise the legacy text."""
    note = dig(post, "note_tweet", "note_tweet_results", "result", "text")
    if note:
        return note
    return dig(post, "legacy", "full_text", default="")


def extract_post_media(post: Record) -> list[Record]:
    """
    Media attached to a post.

    A repost carries its media on the reposted post, so that one wins.
    Extended entities hold the full media list; plain entities only the first.
    """
    retweeted = extract_retweeted_post(post)
    source = retweeted if retweeted is not None else post
    legacy = source.get("legacy") or {}
    media = dig(legacy, "extended_entities", "media") or dig(legacy, "entities", "media") or []
    return [m for m in media if isinstance(m, dict)]


def get_media_original_url(media: Record) -> str:
    """
    Original-quality URL for a media item.

    Videos and animated GIFs resolve to the highest-bitrate mp4 variant;
    photos (and videos without variants) to the full-size image.
    """
    if media.get("type") in ("video", "animated_gif"):
        variants = [
            v
            for v in dig(media, "video_info", "variants", default=[])
            if isinstance(v, dict) and v.get("content_type") == "video/mp4" and v.get("url")
        ]
        if variants:
            best = max(variants, key=lambda v: v.get("bitrate") or 0)
            return str(best["url"])

    url = str(media.get("media_url_https") or media.get("media_url") or "")
    if not url:
        return ""
    return f"{url.split('?')[0]}?name=orig"


def get_post_url(post: Record) -> str:
    return POST_URL_TEMPLATE.format(
        screen_name=extract_screen_name(post) or "i",
        rest_id=post.get("rest_id", ""),
    )


def compute_private_fields(kind: RecordKind, record: Record, updated_at: int) -> dict[str, int]:
    """
    Build the private annotation block stored alongside a record.

    The block is always rebuilt from scratch so it can never be partially
    stale. Unparseable source timestamps become 0.
    """
    if kind == RecordKind.POST:
        created = parse_twitter_datetime(dig(record, "legacy", "created_at"))
        return {
            "created_at": to_epoch_ms(created),
            "updated_at": updated_at,
            "media_count": len(extract_post_media(record)),
        }

    created = parse_twitter_datetime(
        dig(record, "core", "created_at") or dig(record, "legacy", "created_at")
    )
    return {
        "created_at": to_epoch_ms(created),
        "updated_at": updated_at,
    }
