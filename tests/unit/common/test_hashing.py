"""Tests for common.hashing module."""

import hashlib

from common.hashing import compute_item_hashes, generate_item_id, sha256_hex

SITE = "http://example.com/"


class TestGenerateItemId:
    def test_hashes_identifier(self) -> None:
        assert generate_item_id("urn:example:1") == hashlib.sha256(b"urn:example:1").hexdigest()

    def test_missing_identifier_returns_none(self) -> None:
        assert generate_item_id(None) is None
        assert generate_item_id("") is None


class TestComputeItemHashes:
    def test_all_hashes_present(self) -> None:
        ut, uc, tc = compute_item_hashes("http://example.com/1", "Title", "Body", SITE)
        assert ut == sha256_hex("http://example.com/1", "Title")
        assert uc == sha256_hex("http://example.com/1", "Body")
        assert tc == sha256_hex("Title", "Body")

    def test_no_link_and_no_title_leaves_url_title_hash_empty(self) -> None:
        ut, uc, tc = compute_item_hashes(SITE, SITE, "Body", SITE)
        assert ut == ""
        assert uc != ""
        assert tc != ""

    def test_no_link_and_no_content_leaves_url_content_hash_empty(self) -> None:
        ut, uc, tc = compute_item_hashes(SITE, "Title", "", SITE)
        assert ut != ""
        assert uc == ""
        assert tc != ""

    def test_no_title_and_no_content_leaves_title_content_hash_empty(self) -> None:
        url = "http://example.com/1"
        ut, uc, tc = compute_item_hashes(url, url, "", SITE)
        assert ut != ""
        assert uc != ""
        assert tc == ""
