"""Tests for projecting stored posts to vault documents."""

import json

from twexport.core.export import bucket_key, group_by_bucket, to_vault_document


class TestToVaultDocument:
    """Tests for to_vault_document()."""

    def test_fields(self, make_post):
        post = make_post("100", screen_name="alice", text="hi there", in_reply_to_status_id_str="99")
        doc = to_vault_document(post)

        assert doc.id == "100"
        assert doc.created_at == "2024-01-01T12:00:00.000Z"
        assert doc.screen_name == "alice"
        assert doc.name == "Alice"
        assert doc.text == "hi there"
        assert doc.url == "https://x.com/alice/status/100"
        assert doc.source == "home_timeline"
        assert doc.context.in_reply_to == "99"
        assert doc.context.retweeted_status is None

    def test_metrics_flattened(self, make_post):
        doc = to_vault_document(make_post("1"))

        assert doc.metrics.model_dump() == {
            "favorites": 1,
            "retweets": 2,
            "replies": 3,
            "quotes": 4,
            "bookmarks": 5,
            "views": 100,
        }

    def test_missing_metrics_default(self, make_post):
        """Test that absent or junk counters do not break the projection."""
        post = make_post("1", favorite_count=None, retweet_count="n/a")
        del post["views"]
        doc = to_vault_document(post)

        assert doc.metrics.favorites == 0
        assert doc.metrics.retweets == 0
        assert doc.metrics.views is None

    def test_referenced_posts(self, make_post):
        post = make_post("1", retweeted_status_result={"result": make_post("2")})
        post["quoted_status_result"] = {"result": make_post("3")}
        doc = to_vault_document(post)

        assert doc.context.retweeted_status == "2"
        assert doc.context.quoted_status == "3"

    def test_media_urls(self, make_post):
        post = make_post(
            "1",
            extended_entities={
                "media": [
                    {"type": "photo", "media_url_https": "https://pbs.twimg.com/media/a.jpg"},
                    {"type": "photo"},
                ]
            },
        )
        assert to_vault_document(post).media == ["https://pbs.twimg.com/media/a.jpg?name=orig"]

    def test_unparseable_timestamp_falls_back_to_epoch(self, make_post):
        """Test the degraded epoch fallback instead of a failure."""
        post = make_post("1", created_at="garbage")

        assert to_vault_document(post).created_at == "1970-01-01T00:00:00.000Z"
        assert bucket_key(post) == "1970-01-01"

    def test_deterministic(self, make_post):
        post = make_post("1")
        assert to_vault_document(post).to_line() == to_vault_document(post).to_line()

    def test_line_is_single_json_object(self, make_post):
        line = to_vault_document(make_post("1", text="multi\nline")).to_line()

        assert "\n" not in line
        assert json.loads(line)["text"] == "multi\nline"


class TestBucketing:
    """Tests for bucket_key() and group_by_bucket()."""

    def test_bucket_is_utc_date(self, make_post):
        assert bucket_key(make_post("1", created_at="Sun Dec 31 23:30:00 -0100 2023")) == "2024-01-01"

    def test_group_keeps_input_order(self, make_post):
        posts = [
            make_post("3", created_at="Tue Jan 02 10:00:00 +0000 2024"),
            make_post("1", created_at="Mon Jan 01 10:00:00 +0000 2024"),
            make_post("2", created_at="Tue Jan 02 09:00:00 +0000 2024"),
        ]
        buckets = group_by_bucket(posts)

        assert list(buckets) == ["2024-01-02", "2024-01-01"]
        assert [d.id for d in buckets["2024-01-02"]] == ["3", "2"]
        assert [d.id for d in buckets["2024-01-01"]] == ["1"]

    def test_empty(self):
        assert group_by_bucket([]) == {}
