"""Hashing utilities."""

import hashlib


def sha256_hex(*parts: str) -> str:
    """Return the SHA-256 hex digest of the concatenated parts."""
    return hashlib.sha256("".join(parts).encode()).hexdigest()


def generate_item_id(identifier: str | None) -> str | None:
    """Hash a feed-supplied identifier; None when the feed supplied none."""
    if not identifier:
        return None
    return sha256_hex(identifier)


def compute_item_hashes(
    url: str,
    title: str,
    content: str,
    site_url: str,
) -> tuple[str, str, str]:
    """Compute the (url+title, url+content, title+content) fingerprints of an item.

    `content` already includes the enclosure URL and type. A fingerprint is
    the empty string when the parts it would be built from are missing: an item
    whose link equals the site URL has no link of its own, and an item whose
    title equals its link has no title of its own.
    """
    if url == site_url and title == site_url:
        url_title_hash = ""
    else:
        url_title_hash = sha256_hex(url, title)

    if not content and url == site_url:
        url_content_hash = ""
    else:
        url_content_hash = sha256_hex(url, content)

    if not content and title == url:
        title_content_hash = ""
    else:
        title_content_hash = sha256_hex(title, content)

    return url_title_hash, url_content_hash, title_content_hash
