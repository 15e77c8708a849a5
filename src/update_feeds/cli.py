"""CLI for updating feeds."""

from __future__ import annotations

import logging
from datetime import timedelta

from dotenv import load_dotenv

from common.cli_helpers import setup_logging
from common.config import load_config, set_config
from feed_store.connection import Storage
from feed_store.feeds import feed_cleanup
from update_feeds.helpers import parse_update_feeds_args
from update_feeds.update_feed import update_feed, update_stale_feeds

load_dotenv()

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    setup_logging()
    args = parse_update_feeds_args(argv)

    config = load_config(args.config)
    set_config(config)

    storage = Storage.from_url(config.store.database_url, echo=config.store.echo)
    try:
        if args.feed_id:
            modified = 0
            for feed_id in args.feed_id:
                if update_feed(storage, feed_id, args.raise_errors, fetch_config=config.fetch):
                    modified += 1
            logger.info("Updated %d requested feeds, %d modified", len(args.feed_id), modified)
        else:
            update_stale_feeds(storage, args.raise_errors, fetch_config=config.fetch)

        if args.cleanup:
            feed_cleanup(storage, timedelta(hours=config.store.purge_feeds_hours))
    finally:
        storage.close()


if __name__ == "__main__":
    main()
