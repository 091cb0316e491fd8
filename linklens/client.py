"""
Client facade.

LinkLensClient owns one RecordStore and wires every component to it: the
session reconciler (which grants store ownership), URL preview, background
enrichment, the save guard, article/collection actions and the trash.
Hosts (UI shells, the CLI) construct one client per process and feed it
user input and auth notifications.
"""

import logging
from typing import Optional

from .articles import ArticleActions, CollectionActions
from .config import DEFAULT_ANALYZE_TIMEOUT, DEFAULT_PREVIEW_DELAY, ClientConfig
from .document_store import DocumentStore, SQLiteGateway
from .enrichment import EnrichmentPipeline
from .preview import PreviewCoordinator
from .protocol import (
    AlwaysConfirm,
    AuthClient,
    BusyIndicator,
    Confirmer,
    EnrichmentService,
    EntrySurface,
    Notifier,
    NullEntrySurface,
    PersistenceGateway,
    SimpleBusyIndicator,
)
from .record_store import RecordStore
from .save_guard import SaveGuard
from .session import SessionReconciler
from .trash import TrashArchive, TrashController
from .types import ArticleDraft

logger = logging.getLogger(__name__)


class LinkLensClient:
    """One signed-in view of a user's saved links."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        service: EnrichmentService,
        auth: AuthClient,
        notifier: Notifier,
        *,
        confirmer: Optional[Confirmer] = None,
        indicator: Optional[BusyIndicator] = None,
        surface: Optional[EntrySurface] = None,
        archive: Optional[TrashArchive] = None,
        preview_delay: float = DEFAULT_PREVIEW_DELAY,
        analyze_timeout: float = DEFAULT_ANALYZE_TIMEOUT,
    ):
        self.store = RecordStore()
        self.draft = ArticleDraft()
        self.notifier = notifier
        self.indicator = indicator if indicator is not None else SimpleBusyIndicator()
        confirmer = confirmer if confirmer is not None else AlwaysConfirm()

        self.session = SessionReconciler(
            self.store, gateway, auth, notifier, archive=archive,
        )
        self.preview = PreviewCoordinator(
            service, self.draft, notifier=notifier, delay=preview_delay,
        )
        self.trash = TrashController(self.store, gateway, notifier, confirmer, archive)
        self.enrichment = EnrichmentPipeline(
            service, gateway, self.store, notifier,
            timeout=analyze_timeout,
            on_trash_change=self.trash.sync_archive,
        )
        self.guard = SaveGuard(self.indicator)
        self.articles = ArticleActions(
            self.store, gateway, notifier, self.guard, self.draft,
            user_provider=lambda: self.session.user_id,
            surface=surface if surface is not None else NullEntrySurface(),
            preview=self.preview,
            enrichment=self.enrichment,
        )
        self.collections = CollectionActions(
            self.store, gateway, notifier, confirmer, trash=self.trash,
        )

        # Nothing from a previous session may outlive its sign-out
        self.session.add_reset_hook(self.preview.cancel)
        self.session.add_reset_hook(self.enrichment.cancel_all)
        self.session.add_reset_hook(self.guard.reset)
        self.session.add_reset_hook(self.draft.reset)

        self._closers = []

    @classmethod
    def local(
        cls,
        config: ClientConfig,
        auth: AuthClient,
        notifier: Notifier,
        *,
        service: Optional[EnrichmentService] = None,
        **kwargs,
    ) -> "LinkLensClient":
        """
        Client backed by the SQLite store and HTTP worker described by ``config``.

        The worker's bearer token is the session's access token, falling
        back to the configured token.
        """
        from .worker_client import WorkerClient

        doc_store = DocumentStore(config.database_path)
        holder: dict[str, LinkLensClient] = {}

        def current_user() -> Optional[str]:
            return holder["client"].session.user_id if "client" in holder else None

        def current_token() -> Optional[str]:
            client = holder.get("client")
            token = client.session.access_token if client else None
            return token or config.token

        worker = None
        if service is None:
            worker = WorkerClient(
                config.worker_url,
                token_provider=current_token,
                timeout=config.request_timeout,
            )
            service = worker

        client = cls(
            SQLiteGateway(doc_store, current_user),
            service,
            auth,
            notifier,
            archive=TrashArchive(config.trash_dir),
            preview_delay=config.preview_delay,
            analyze_timeout=config.analyze_timeout,
            **kwargs,
        )
        holder["client"] = client
        client._closers.append(doc_store.close)
        if worker is not None:
            client._closers.append(worker.aclose)
        return client

    async def aclose(self) -> None:
        """Cancel background work and release owned resources."""
        self.preview.cancel()
        self.enrichment.cancel_all()
        for closer in self._closers:
            result = closer()
            if result is not None:
                await result
        self._closers = []
