"""
Background enrichment of freshly saved articles.

After a create has been persisted, the pipeline asks the worker to analyze
the URL and merges the result (title, summary, keywords, category) into
both the stored record and the in-memory store. It runs as an independent
task that nobody awaits: the save has already succeeded, and an analysis
failure only produces an informational notice.

There is exactly one attempt per article. The analysis call is bounded by
``timeout`` seconds; hitting the bound counts as a failure. An article
that was moved to the trash while its analysis ran has no remote record
left, so only its local trashed copy is updated.
"""

import asyncio
import logging
from typing import Callable, Optional

from .config import DEFAULT_ANALYZE_TIMEOUT
from .errors import StaleResultError
from .protocol import EnrichmentService, NoticeLevel, Notifier, PersistenceGateway
from .record_store import RecordStore
from .types import Category, get_domain

logger = logging.getLogger(__name__)

ENRICH_OK_MESSAGE = "AI analysis complete"
ENRICH_FAILED_MESSAGE = "AI analysis failed, but the link was saved"


class EnrichmentPipeline:
    """Spawns and tracks one analysis task per created article."""

    def __init__(
        self,
        service: EnrichmentService,
        gateway: PersistenceGateway,
        store: RecordStore,
        notifier: Notifier,
        *,
        timeout: float = DEFAULT_ANALYZE_TIMEOUT,
        on_trash_change: Optional[Callable[[], None]] = None,
    ):
        self._service = service
        self._gateway = gateway
        self._store = store
        self._notifier = notifier
        self._timeout = timeout
        self._on_trash_change = on_trash_change
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of enrichment tasks still running."""
        return sum(1 for t in self._tasks if not t.done())

    def start(
        self,
        article_id: str,
        url: str,
        *,
        manual_title: str = "",
        fallback_category: Category = Category.OTHER,
    ) -> asyncio.Task:
        """Kick off enrichment for a persisted article; do not await the result."""
        task = asyncio.create_task(
            self._enrich(article_id, url, manual_title, fallback_category, self._store.epoch),
            name=f"enrich:{article_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self) -> None:
        """Cancel every outstanding enrichment (sign-out)."""
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        self._tasks.clear()

    async def wait(self) -> None:
        """Wait until every outstanding enrichment has finished."""
        while True:
            running = [t for t in self._tasks if not t.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def _enrich(
        self,
        article_id: str,
        url: str,
        manual_title: str,
        fallback_category: Category,
        epoch: int,
    ) -> None:
        try:
            async with asyncio.timeout(self._timeout):
                result = await self._service.analyze(url, timeout=self._timeout)
            updates = {
                "title": manual_title or result.title or get_domain(url) or url,
                "summary": result.summary or "",
                "keywords": list(result.keywords or []),
                "category": Category.parse(result.category, fallback_category).value,
            }
            if not self._store.is_current(epoch):
                raise StaleResultError(f"session changed before enrichment of {article_id}")
            # A trashed article has no remote record left; only the local copy is updated
            if self._store.get(article_id) is not None or self._store.get_trashed(article_id) is None:
                await self._gateway.update_article(article_id, updates)
            if not self._store.is_current(epoch):
                raise StaleResultError(f"session changed during enrichment of {article_id}")
        except asyncio.CancelledError:
            logger.debug("Enrichment cancelled for %s", article_id)
            raise
        except StaleResultError as e:
            logger.debug("Discarding enrichment result: %s", e)
            return
        except TimeoutError:
            logger.warning("AI analysis of %s timed out after %ss", url, self._timeout)
            self._notifier.notify(ENRICH_FAILED_MESSAGE, NoticeLevel.INFO)
            return
        except Exception as e:
            logger.warning("AI analysis failed for %s: %s", url, e)
            self._notifier.notify(ENRICH_FAILED_MESSAGE, NoticeLevel.INFO)
            return

        article = self._store.get(article_id)
        if article is not None:
            article.apply(updates)
            self._store.touch()
        else:
            article = self._store.get_trashed(article_id)
            if article is not None:
                article.apply(updates)
                self._store.touch()
                if self._on_trash_change is not None:
                    self._on_trash_change()
        logger.info("Enriched %s", article_id)
        self._notifier.notify(ENRICH_OK_MESSAGE, NoticeLevel.OK)
