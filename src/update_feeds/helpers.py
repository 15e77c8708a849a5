"""Helper functions for update_feeds CLI."""

from __future__ import annotations

import argparse

from common.cli_helpers import parse_positive_int


def parse_update_feeds_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for update_feeds."""

    parser = argparse.ArgumentParser(description="Fetch due feeds and store new or changed articles")

    parser.add_argument(
        "--config",
        default=None,
        help="Config name under configs/ (default: $CONFIG_ENV or prod)",
    )
    parser.add_argument(
        "--feed-id",
        type=lambda v: parse_positive_int(v, "feed-id"),
        action="append",
        default=None,
        help="Update only this feed, regardless of schedule (repeatable)",
    )
    parser.add_argument(
        "--raise-errors",
        action="store_true",
        help="Abort on the first feed that fails to fetch",
    )
    parser.add_argument(
        "--cleanup",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Purge feeds without subscribers after updating (default: False)",
    )

    return parser.parse_args(argv)
