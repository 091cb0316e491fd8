"""
Debounced URL preview for the add-article form.

As the user types a URL, each keystroke calls ``on_url_input()``. Only a
pause of ``delay`` seconds lets a preview request go out; any newer input
cancels the pending timer *and* the in-flight request in one step, so at
most one request per pause survives and its result is for the last URL
typed. A successful preview fills the draft title unless the user has
typed a title of their own.

Each scheduled unit of work is one asyncio.Task. Cancelling that task
cancels whichever await it is parked on: the sleep (timer) or the HTTP
call (request).
"""

import asyncio
import logging
from typing import Optional

from .config import DEFAULT_PREVIEW_DELAY
from .errors import AuthError
from .protocol import EnrichmentService, NoticeLevel, Notifier
from .types import ArticleDraft, is_valid_url

logger = logging.getLogger(__name__)


class PreviewCoordinator:
    """Debounces preview requests for one ArticleDraft."""

    def __init__(
        self,
        service: EnrichmentService,
        draft: ArticleDraft,
        *,
        notifier: Optional[Notifier] = None,
        delay: float = DEFAULT_PREVIEW_DELAY,
    ):
        self._service = service
        self._draft = draft
        self._notifier = notifier
        self._delay = delay
        self._task: Optional[asyncio.Task] = None
        self._loading = False

    @property
    def pending(self) -> bool:
        """True while a timer or request is outstanding."""
        return self._task is not None and not self._task.done()

    @property
    def loading(self) -> bool:
        """True while a preview request is on the wire (placeholder state)."""
        return self._loading

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def cancel(self) -> None:
        """Stop the pending timer and any outstanding request. Idempotent."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        self._loading = False

    def on_url_input(self, raw_url: str) -> None:
        """Handle one edit of the URL field."""
        self._draft.url = raw_url
        url = raw_url.strip()
        self.cancel()
        if not url or self._draft.title_edited:
            return
        if not is_valid_url(url):
            return
        self._task = asyncio.create_task(self._run(url), name=f"preview:{url}")

    async def _run(self, url: str) -> None:
        await asyncio.sleep(self._delay)
        me = asyncio.current_task()
        fresh = False
        self._loading = True
        try:
            result = await self._service.preview(url)
        except asyncio.CancelledError:
            # Superseded or cancelled by the caller; never reported
            logger.debug("Preview cancelled for %s", url)
            raise
        except AuthError as e:
            logger.warning("Preview failed for %s: %s", url, e)
            if self._notifier is not None:
                self._notifier.notify("Session expired", NoticeLevel.ERR)
            return
        except Exception as e:
            logger.warning("Preview failed for %s: %s", url, e)
            return
        finally:
            if self._task is me:
                fresh = True
                self._loading = False
                self._task = None

        if not fresh:
            return
        if result.title and not self._draft.title_edited:
            self._draft.title = result.title
