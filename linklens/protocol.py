"""
Protocol definitions for the collaborators the client core talks to.

Defines interface contracts at two levels:
- Remote services: PersistenceGateway (durable article/collection storage),
  EnrichmentService (preview + analysis worker), AuthClient
- UI surface: Notifier, Confirmer, BusyIndicator, EntrySurface

The core never reaches past these contracts; concrete implementations live
in document_store.py (SQLite), worker_client.py (HTTP), or in the host app.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from .types import Session


@dataclass
class LoadResult:
    """Everything the gateway holds for the current user."""
    articles: list[dict[str, Any]] = field(default_factory=list)
    collections: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PreviewResult:
    title: Optional[str] = None


@dataclass
class AnalysisResult:
    title: Optional[str] = None
    summary: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    category: Optional[str] = None


class NoticeLevel(str, Enum):
    OK = "ok"
    ERR = "err"
    INFO = "info"


@runtime_checkable
class PersistenceGateway(Protocol):
    """
    Durable storage for the signed-in user's articles and collections.

    Every call is independently atomic; there are no multi-call
    transactions. Failures raise TransportError (AuthError for 401).
    """

    async def insert_article(self, record: dict[str, Any]) -> str: ...

    async def update_article(self, id: str, fields: dict[str, Any]) -> None: ...

    async def delete_article(self, id: str) -> None: ...

    async def insert_collection(self, record: dict[str, Any]) -> str: ...

    async def update_collection(self, id: str, fields: dict[str, Any]) -> None: ...

    async def delete_collection(self, id: str) -> None: ...

    async def load_all(self) -> LoadResult: ...


@runtime_checkable
class EnrichmentService(Protocol):
    """Remote preview/analysis worker."""

    async def preview(self, url: str) -> PreviewResult: ...

    async def analyze(self, url: str, *, timeout: float) -> AnalysisResult: ...


@runtime_checkable
class AuthClient(Protocol):

    async def get_session(self) -> Optional[Session]: ...

    async def sign_out(self) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    def notify(self, message: str, level: NoticeLevel) -> None: ...


@runtime_checkable
class Confirmer(Protocol):
    def confirm(self, message: str) -> bool: ...


@runtime_checkable
class BusyIndicator(Protocol):
    """The visible in-flight marker of the save control (e.g. disabled button)."""

    @property
    def busy(self) -> bool: ...

    def set_busy(self, busy: bool) -> None: ...


@runtime_checkable
class EntrySurface(Protocol):
    """The add-article entry form (modal)."""

    def close(self) -> None: ...


class SimpleBusyIndicator:
    """Headless BusyIndicator for hosts without a visible control."""

    def __init__(self):
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def set_busy(self, busy: bool) -> None:
        self._busy = busy


class NullEntrySurface:
    def close(self) -> None:
        pass


class AlwaysConfirm:
    def confirm(self, message: str) -> bool:
        return True
