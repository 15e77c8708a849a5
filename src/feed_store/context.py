"""Filter context: the predicate bag that drives article query construction."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterator, Optional

from feed_store.validation import clean_id_list

# Maximum number of ids an id-set predicate may carry in a single query
LIMIT_ARTICLES = 50


@dataclass
class FilterContext:
    """Optional, independently settable article predicates.

    Every field left as None is ignored. When both are set, `edition` takes
    precedence over `article` and `editions` over `articles`.
    """
    subscription: Optional[int] = None
    folder: Optional[int] = None
    folder_shallow: Optional[int] = None
    label: Optional[int] = None
    label_name: Optional[str] = None
    labelled: Optional[bool] = None
    article: Optional[int] = None
    articles: Optional[list[int]] = None
    edition: Optional[int] = None
    editions: Optional[list[int]] = None
    oldest_article: Optional[int] = None
    latest_article: Optional[int] = None
    oldest_edition: Optional[int] = None
    latest_edition: Optional[int] = None
    modified_since: Optional[datetime] = None
    not_modified_since: Optional[datetime] = None
    marked_since: Optional[datetime] = None
    not_marked_since: Optional[datetime] = None
    unread: Optional[bool] = None
    starred: Optional[bool] = None
    annotated: Optional[bool] = None
    limit: int = 0
    offset: int = 0
    reverse: bool = False

    def clone(self, **changes) -> "FilterContext":
        """Copy the context, replacing the given fields."""
        copied = replace(self, **changes)
        # lists are shared by replace(); give the copy its own
        for name in ("articles", "editions"):
            value = getattr(copied, name)
            if value is not None and name not in changes:
                setattr(copied, name, list(value))
        return copied

    def id_set_field(self) -> Optional[str]:
        """Name of the id-set predicate in effect, editions winning over articles."""
        if self.editions is not None:
            return "editions"
        if self.articles is not None:
            return "articles"
        return None

    def chunks(self, size: int = LIMIT_ARTICLES) -> Iterator["FilterContext"]:
        """Yield one clone per consecutive slice of at most `size` ids.

        Invalid and repeated ids are dropped before splitting, so an id never
        lands in two chunks. Yields nothing when the cleaned id set already
        fits into one query.
        """
        name = self.id_set_field()
        if name is None:
            return
        ids = clean_id_list(getattr(self, name))
        if len(ids) <= size:
            return
        for start in range(0, len(ids), size):
            yield self.clone(**{name: ids[start:start + size]})

