"""Exceptions raised while downloading or parsing a feed."""


class FeedError(Exception):
    """A feed could not be fetched or parsed."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{url}: {message}")
