"""
In-memory record store for one signed-in user.

Holds the authoritative Active and Trashed article lists plus the user's
collections. The store is owned by exactly one session at a time; the
session reconciler grants and revokes that ownership through
``replace_all()`` and ``clear()``.

Every ownership change advances ``epoch``. Asynchronous operations capture
the epoch before they suspend and check ``is_current()`` when they resume,
so a completion arriving after a sign-out (or a user switch) never writes
into a cleared or foreign store.
"""

import logging
from typing import Callable, Iterable, Optional

from .types import Article, Collection

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class RecordStore:
    """Active articles, trashed articles and collections, most recent first."""

    def __init__(self):
        self._articles: list[Article] = []
        self._trash: list[Article] = []
        self._collections: list[Collection] = []
        self._owner: Optional[str] = None
        self._epoch = 0
        self._listeners: list[Listener] = []

    # -------------------------------------------------------------------------
    # Ownership
    # -------------------------------------------------------------------------

    @property
    def owner(self) -> Optional[str]:
        """User id whose data is loaded, or None."""
        return self._owner

    @property
    def epoch(self) -> int:
        return self._epoch

    def is_current(self, epoch: int) -> bool:
        """True if nothing replaced or cleared the store since ``epoch``."""
        return epoch == self._epoch

    def replace_all(
        self,
        articles: Iterable[Article],
        collections: Iterable[Collection],
        trash: Optional[Iterable[Article]] = None,
        *,
        owner: Optional[str] = None,
    ) -> None:
        """Atomically swap in a freshly loaded data set."""
        self._articles = list(articles)
        self._collections = list(collections)
        self._trash = list(trash) if trash is not None else []
        self._owner = owner
        self._epoch += 1
        self._changed()

    def clear(self) -> None:
        """Drop everything. Never awaits; safe to call at any time."""
        self._articles = []
        self._trash = []
        self._collections = []
        self._owner = None
        self._epoch += 1
        self._changed()

    def is_empty(self) -> bool:
        return not self._articles and not self._collections

    # -------------------------------------------------------------------------
    # Change notification
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.warning("Store listener failed: %s", e)

    def touch(self) -> None:
        """Announce an in-place edit of an article or collection."""
        self._changed()

    # -------------------------------------------------------------------------
    # Active articles
    # -------------------------------------------------------------------------

    @property
    def articles(self) -> list[Article]:
        return list(self._articles)

    def get(self, id: str) -> Optional[Article]:
        for article in self._articles:
            if article.id == id:
                return article
        return None

    def index_of(self, id: str) -> int:
        for i, article in enumerate(self._articles):
            if article.id == id:
                return i
        return -1

    def prepend(self, article: Article) -> None:
        self._articles.insert(0, article)
        self._changed()

    def insert_at(self, index: int, article: Article) -> None:
        """Put an article back at a known position (rollback)."""
        index = max(0, min(index, len(self._articles)))
        self._articles.insert(index, article)
        self._changed()

    def upsert(self, article: Article) -> None:
        """Replace the article with the same id in place, or prepend it."""
        idx = self.index_of(article.id) if article.id is not None else -1
        if idx >= 0:
            self._articles[idx] = article
            self._changed()
        else:
            self.prepend(article)

    def remove(self, id: str) -> Optional[Article]:
        idx = self.index_of(id)
        if idx < 0:
            return None
        article = self._articles.pop(idx)
        self._changed()
        return article

    # -------------------------------------------------------------------------
    # Trash
    # -------------------------------------------------------------------------

    @property
    def trash(self) -> list[Article]:
        return list(self._trash)

    def get_trashed(self, id: str) -> Optional[Article]:
        for article in self._trash:
            if article.id == id:
                return article
        return None

    def prepend_trash(self, article: Article) -> None:
        self._trash.insert(0, article)
        self._changed()

    def remove_trash(self, id: str) -> Optional[Article]:
        for i, article in enumerate(self._trash):
            if article.id == id:
                del self._trash[i]
                self._changed()
                return article
        return None

    def clear_trash(self) -> int:
        count = len(self._trash)
        self._trash = []
        self._changed()
        return count

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    @property
    def collections(self) -> list[Collection]:
        return list(self._collections)

    def get_collection(self, id: str) -> Optional[Collection]:
        for col in self._collections:
            if col.id == id:
                return col
        return None

    def add_collection(self, collection: Collection) -> None:
        self._collections.append(collection)
        self._changed()

    def update_collection(self, id: str, *, name: str, color: str) -> bool:
        col = self.get_collection(id)
        if col is None:
            return False
        col.name = name
        col.color = color
        self._changed()
        return True

    def remove_collection(self, id: str) -> Optional[Collection]:
        for i, col in enumerate(self._collections):
            if col.id == id:
                del self._collections[i]
                self._changed()
                return col
        return None

    def articles_in_collection(self, collection_id: str) -> list[Article]:
        return [a for a in self._articles if collection_id in a.collections]
