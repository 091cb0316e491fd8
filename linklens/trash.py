"""
Trash: soft delete and restore of articles.

Trashing is a structural move from the Active list to the Trashed list.
The remote record is deleted at trash time, so the trash itself only
exists on this client; TrashArchive keeps it on disk per user so it
survives restarts. Restoring re-inserts the article remotely as a new
record, which means a restored article gets a fresh id.

If the remote delete fails, the move is rolled back: the article returns
to its old position in the Active list. A trashed article whose remote
record still exists would otherwise come back as a duplicate on restore.
"""

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Optional

from .errors import AuthError
from .protocol import Confirmer, NoticeLevel, Notifier, PersistenceGateway
from .record_store import RecordStore
from .types import Article, now_millis

logger = logging.getLogger(__name__)


class TrashArchive:
    """Per-user JSON file holding the local trash."""

    def __init__(self, directory: Path):
        self._dir = directory

    def _path(self, user_id: str) -> Path:
        digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:32]
        return self._dir / f"{digest}.json"

    def load(self, user_id: str) -> list[Article]:
        path = self._path(user_id)
        if not path.exists():
            return []
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Unreadable trash archive %s: %s", path, e)
            return []
        articles = []
        for record in data.get("trash", []):
            try:
                articles.append(Article.from_record(record))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping bad trash entry in %s: %s", path, e)
        return articles

    def save(self, user_id: str, articles: list[Article]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path(user_id)
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({"trash": [a.to_dict() for a in articles]}, f, ensure_ascii=False)
        tmp.replace(path)

    def clear(self, user_id: str) -> None:
        self._path(user_id).unlink(missing_ok=True)


class TrashController:
    """Moves articles between the Active and Trashed lists."""

    def __init__(
        self,
        store: RecordStore,
        gateway: PersistenceGateway,
        notifier: Notifier,
        confirmer: Confirmer,
        archive: Optional[TrashArchive] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._notifier = notifier
        self._confirmer = confirmer
        self._archive = archive

    def sync_archive(self) -> None:
        """Write the current trash to the archive of the store owner."""
        owner = self._store.owner
        if self._archive is None or owner is None:
            return
        try:
            self._archive.save(owner, self._store.trash)
        except OSError as e:
            logger.warning("Could not save trash archive: %s", e)

    def _amend_archive(self, owner: Optional[str], id: str, article: Optional[Article] = None) -> None:
        """
        Repair the archive of ``owner`` after its session ended mid-operation.

        Drops ``id`` from the archived trash and, when ``article`` is given,
        puts it back at the front. If the same user has signed in again in
        the meantime, the loaded trash gets the same repair.
        """
        if self._archive is None or owner is None:
            return
        try:
            trash = [a for a in self._archive.load(owner) if a.id != id]
            if article is not None:
                trash.insert(0, article)
            self._archive.save(owner, trash)
        except OSError as e:
            logger.warning("Could not repair trash archive: %s", e)
            return

        if self._store.owner == owner:
            self._store.remove_trash(id)
            if article is not None:
                self._store.prepend_trash(article)

    def _report(self, action: str, exc: Exception) -> None:
        if isinstance(exc, AuthError):
            self._notifier.notify("Session expired", NoticeLevel.ERR)
        else:
            self._notifier.notify(f"{action} failed: {exc}", NoticeLevel.ERR)

    async def move_to_trash(self, id: str) -> bool:
        """Soft-delete an active article. Returns True if it ended up in the trash."""
        article = self._store.get(id)
        if article is None:
            return False
        if not self._confirmer.confirm("Move this article to the trash?"):
            return False

        index = self._store.index_of(id)
        epoch = self._store.epoch
        owner = self._store.owner
        self._store.remove(id)
        article.trashed_at = now_millis()
        self._store.prepend_trash(article)
        self.sync_archive()

        try:
            await self._gateway.delete_article(id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Remote delete of %s failed: %s", id, e)
            if not self._store.is_current(epoch):
                # The remote record survived; it must not also stay archived
                self._amend_archive(owner, id)
                return False
            if self._store.remove_trash(id) is not None:
                article.trashed_at = None
                self._store.insert_at(index, article)
                self.sync_archive()
            self._report("Move to trash", e)
            return False

        if self._store.is_current(epoch):
            self._notifier.notify("Moved to trash", NoticeLevel.INFO)
        return True

    async def restore_from_trash(self, id: str) -> Optional[Article]:
        """Re-create a trashed article remotely and put it back in Active."""
        article = self._store.remove_trash(id)
        if article is None:
            return None
        trashed_at, article.trashed_at = article.trashed_at, None
        epoch = self._store.epoch
        owner = self._store.owner
        self.sync_archive()

        try:
            new_id = await self._gateway.insert_article(article.to_record())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Restore of %s failed: %s", id, e)
            article.trashed_at = trashed_at
            if self._store.is_current(epoch):
                self._store.prepend_trash(article)
                self.sync_archive()
                self._report("Restore", e)
            else:
                self._amend_archive(owner, id, article)
            return None

        if not self._store.is_current(epoch):
            logger.debug("Session changed during restore of %s; not applying", id)
            return None
        article.id = new_id
        self._store.prepend(article)
        self._notifier.notify("Article restored", NoticeLevel.OK)
        return article

    def delete_forever(self, id: str) -> bool:
        """Purge one article from the trash. No remote call."""
        if self._store.get_trashed(id) is None:
            return False
        if not self._confirmer.confirm("Delete this article permanently?"):
            return False
        self._store.remove_trash(id)
        self.sync_archive()
        self._notifier.notify("Deleted permanently", NoticeLevel.INFO)
        return True

    def empty_trash(self) -> int:
        """Purge the whole trash. Returns the number of articles removed."""
        count = len(self._store.trash)
        if count == 0:
            return 0
        if not self._confirmer.confirm(f"Delete all {count} items in the trash?"):
            return 0
        removed = self._store.clear_trash()
        self.sync_archive()
        self._notifier.notify("Trash emptied", NoticeLevel.OK)
        return removed
