"""
User actions on articles and collections.

Edits are optimistic: the in-memory store changes first and the gateway
call follows. A failed edit is reported but not rolled back; the next
load brings the store back in line with the server. Creating an article
is the exception: the article only enters the store after the insert
succeeded, so a failed create leaves nothing behind.

After a successful create, enrichment starts in the background. It runs
outside the save guard, so the form is usable again as soon as the insert
returns.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from .enrichment import EnrichmentPipeline
from .errors import AuthError, ValidationError
from .preview import PreviewCoordinator
from .protocol import Confirmer, EntrySurface, NoticeLevel, Notifier, PersistenceGateway
from .record_store import RecordStore
from .save_guard import SaveGuard
from .trash import TrashController
from .types import (
    COLLECTION_COLORS,
    Article,
    ArticleDraft,
    Collection,
    Status,
    clean_tag,
    get_domain,
    today,
    validate_collection_name,
    validate_rating,
    validate_url,
)

logger = logging.getLogger(__name__)

UserProvider = Callable[[], Optional[str]]


def _report(notifier: Notifier, action: str, exc: Exception) -> None:
    if isinstance(exc, AuthError):
        notifier.notify("Session expired", NoticeLevel.ERR)
    else:
        notifier.notify(f"{action} failed: {exc}", NoticeLevel.ERR)


class ArticleActions:
    """Create, open and edit articles for the signed-in user."""

    def __init__(
        self,
        store: RecordStore,
        gateway: PersistenceGateway,
        notifier: Notifier,
        guard: SaveGuard,
        draft: ArticleDraft,
        *,
        user_provider: UserProvider,
        surface: EntrySurface,
        preview: Optional[PreviewCoordinator] = None,
        enrichment: Optional[EnrichmentPipeline] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._notifier = notifier
        self._guard = guard
        self._draft = draft
        self._user_provider = user_provider
        self._surface = surface
        self._preview = preview
        self._enrichment = enrichment

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def open_entry(self) -> ArticleDraft:
        """Reset the entry form for a new article."""
        if self._preview is not None:
            self._preview.cancel()
        self._draft.reset()
        return self._draft

    async def save_article(self) -> Optional[Article]:
        """
        Persist the current draft as a new article.

        Returns the created article, or None if the submission was rejected
        or failed. Every failure is reported through the notifier.
        """
        if not self._user_provider():
            self._notifier.notify("Sign in to save links", NoticeLevel.ERR)
            return None

        try:
            url = validate_url(self._draft.url)
        except ValidationError as e:
            self._notifier.notify(str(e), NoticeLevel.ERR)
            return None

        if self._preview is not None:
            self._preview.cancel()

        if not self._guard.try_acquire():
            logger.info("Save already in progress; ignoring duplicate submit")
            return None

        manual_title = self._draft.title.strip()
        domain = get_domain(url)
        article = Article(
            url=url,
            title=manual_title or domain or url,
            source=domain,
            memo=self._draft.memo,
            category=self._draft.category,
            status=self._draft.status,
            tags=list(self._draft.tags),
            date=today(),
        )
        epoch = self._store.epoch

        with self._guard.saving_scope():
            try:
                new_id = await self._gateway.insert_article(article.to_record())
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Insert failed for %s: %s", url, e)
                _report(self._notifier, "Save", e)
                return None

            if not self._store.is_current(epoch):
                logger.debug("Session changed while saving %s; not applying", url)
                return None
            article.id = new_id
            self._store.prepend(article)
            self._notifier.notify("Saved. Running AI analysis...", NoticeLevel.OK)
            self._surface.close()

        if self._enrichment is not None:
            self._enrichment.start(
                new_id, url,
                manual_title=manual_title,
                fallback_category=article.category,
            )
        return article

    # -------------------------------------------------------------------------
    # Edits
    # -------------------------------------------------------------------------

    async def _update(self, article: Article, fields: dict[str, Any], action: str) -> bool:
        epoch = self._store.epoch
        try:
            await self._gateway.update_article(article.id, fields)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Update of %s failed: %s", article.id, e)
            if self._store.is_current(epoch):
                _report(self._notifier, action, e)
            return False
        return True

    async def open_article(self, id: str) -> Optional[Article]:
        """Select an article for reading; the first open marks it read."""
        article = self._store.get(id)
        if article is None:
            return None
        if article.status == Status.UNREAD:
            article.status = Status.READ
            self._store.touch()
            await self._update(article, {"status": Status.READ.value}, "Status update")
        return article

    async def set_status(self, id: str, status: Status) -> bool:
        article = self._store.get(id)
        if article is None:
            return False
        article.status = Status(status)
        self._store.touch()
        ok = await self._update(article, {"status": article.status.value}, "Status update")
        if ok:
            self._notifier.notify("Status updated", NoticeLevel.INFO)
        return ok

    async def toggle_star(self, id: str) -> bool:
        article = self._store.get(id)
        if article is None:
            return False
        article.starred = not article.starred
        self._store.touch()
        ok = await self._update(article, {"starred": article.starred}, "Star")
        if ok:
            self._notifier.notify(
                "Added to favorites" if article.starred else "Removed from favorites",
                NoticeLevel.INFO,
            )
        return ok

    async def set_rating(self, id: str, rating: int) -> bool:
        article = self._store.get(id)
        if article is None:
            return False
        try:
            validate_rating(rating)
        except ValidationError as e:
            self._notifier.notify(str(e), NoticeLevel.ERR)
            return False
        article.rating = rating
        self._store.touch()
        return await self._update(article, {"rating": rating}, "Rating")

    async def save_memo(self, id: str, memo: str) -> bool:
        article = self._store.get(id)
        if article is None:
            return False
        article.memo = memo
        self._store.touch()
        return await self._update(article, {"memo": memo}, "Memo")

    async def add_tag(self, id: str, raw: str) -> bool:
        article = self._store.get(id)
        value = clean_tag(raw)
        if article is None or not value or value in article.tags:
            return False
        article.tags.append(value)
        self._store.touch()
        return await self._update(article, {"tags": list(article.tags)}, "Tag update")

    async def remove_tag(self, id: str, index: int) -> bool:
        article = self._store.get(id)
        if article is None or not 0 <= index < len(article.tags):
            return False
        del article.tags[index]
        self._store.touch()
        return await self._update(article, {"tags": list(article.tags)}, "Tag update")

    async def toggle_collection(self, id: str, collection_id: str) -> bool:
        """Add the article to a collection, or take it out if already there."""
        article = self._store.get(id)
        if article is None or self._store.get_collection(collection_id) is None:
            return False
        if collection_id in article.collections:
            article.collections.remove(collection_id)
        else:
            article.collections.append(collection_id)
        self._store.touch()
        return await self._update(
            article, {"collections": list(article.collections)}, "Collection update",
        )


class CollectionActions:
    """Create, rename and delete collections."""

    def __init__(
        self,
        store: RecordStore,
        gateway: PersistenceGateway,
        notifier: Notifier,
        confirmer: Confirmer,
        trash: Optional[TrashController] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._notifier = notifier
        self._confirmer = confirmer
        self._trash = trash

    async def save_collection(
        self,
        name: str,
        color: Optional[str] = None,
        *,
        collection_id: Optional[str] = None,
    ) -> Optional[Collection]:
        """Create a collection, or rename/recolor one when ``collection_id`` is given."""
        try:
            name = validate_collection_name(name)
        except ValidationError as e:
            self._notifier.notify(str(e), NoticeLevel.ERR)
            return None
        if color not in COLLECTION_COLORS:
            color = COLLECTION_COLORS[0]

        epoch = self._store.epoch
        try:
            if collection_id is not None:
                await self._gateway.update_collection(collection_id, {"name": name, "color": color})
                new_id = collection_id
            else:
                new_id = await self._gateway.insert_collection({"name": name, "color": color})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Saving collection %r failed: %s", name, e)
            if self._store.is_current(epoch):
                _report(self._notifier, "Saving collection", e)
            return None

        if not self._store.is_current(epoch):
            return None
        if collection_id is not None:
            self._store.update_collection(collection_id, name=name, color=color)
            self._notifier.notify("Collection updated", NoticeLevel.OK)
            return self._store.get_collection(collection_id)

        collection = Collection(id=new_id, name=name, color=color)
        self._store.add_collection(collection)
        self._notifier.notify(f'Collection "{name}" created', NoticeLevel.OK)
        return collection

    async def delete_collection(self, collection_id: str) -> bool:
        """
        Delete a collection and drop it from every article that references it.

        The articles themselves are kept. Local references are removed in one
        step once the collection is gone remotely; the per-article updates
        follow and failures among them are reported together.
        """
        collection = self._store.get_collection(collection_id)
        if collection is None:
            return False
        if not self._confirmer.confirm(f'Delete collection "{collection.name}"?'):
            return False

        epoch = self._store.epoch
        try:
            await self._gateway.delete_collection(collection_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Deleting collection %s failed: %s", collection_id, e)
            if self._store.is_current(epoch):
                _report(self._notifier, "Deleting collection", e)
            return False
        if not self._store.is_current(epoch):
            return False

        touched = self._store.articles_in_collection(collection_id)
        for article in touched:
            article.collections = [c for c in article.collections if c != collection_id]
        for article in self._store.trash:
            if collection_id in article.collections:
                article.collections = [c for c in article.collections if c != collection_id]
        self._store.remove_collection(collection_id)
        if self._trash is not None:
            self._trash.sync_archive()

        failed = 0
        for article in touched:
            try:
                await self._gateway.update_article(article.id, {"collections": list(article.collections)})
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Unlinking %s from %s failed: %s", article.id, collection_id, e)
                failed += 1

        if not self._store.is_current(epoch):
            return True
        if failed:
            self._notifier.notify(
                f"Collection deleted, but {failed} article(s) could not be updated",
                NoticeLevel.ERR,
            )
        else:
            self._notifier.notify("Collection deleted", NoticeLevel.OK)
        return True
