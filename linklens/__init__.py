"""
LinkLens client core

Keeps a signed-in user's saved links in memory, synchronized with durable
storage and a remote enrichment worker.

Quick Start:
    from linklens import LinkLensClient

    client = LinkLensClient(gateway, worker, auth, notifier)
    await client.session.boot()

    client.articles.open_entry()
    client.preview.on_url_input("https://example.com/post")
    article = await client.articles.save_article()

CLI Usage:
    linklens save https://example.com/post -t reading
    linklens list
    linklens trash <id>

Environment Variables:
    LINKLENS_STORE_PATH   - Override default store location (~/.linklens)
    LINKLENS_WORKER_URL   - Enrichment worker base URL
    LINKLENS_TOKEN        - Bearer token for the worker
    LINKLENS_VERBOSE      - Set to 1 for debug logging
"""

from .client import LinkLensClient
from .errors import AuthError, LinkLensError, StaleResultError, TransportError, ValidationError
from .record_store import RecordStore
from .session import AuthEvent, SessionReconciler
from .types import Article, ArticleDraft, Category, Collection, Phase, Session, Status

__version__ = "0.1.0"
__all__ = [
    "LinkLensClient",
    "RecordStore",
    "SessionReconciler",
    "AuthEvent",
    "Article",
    "ArticleDraft",
    "Category",
    "Collection",
    "Phase",
    "Session",
    "Status",
    "LinkLensError",
    "ValidationError",
    "TransportError",
    "AuthError",
    "StaleResultError",
]
