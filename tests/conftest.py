"""
Shared pytest fixtures for linklens tests.

Provides in-memory fakes for the gateway, the enrichment worker, auth and
the UI surface so tests never touch the network.
"""

import asyncio
import itertools
from typing import Any, Optional

import pytest

from linklens.client import LinkLensClient
from linklens.protocol import AnalysisResult, LoadResult, NoticeLevel, PreviewResult
from linklens.types import Session


class FakeGateway:
    """
    In-memory PersistenceGateway.

    ``failures`` maps a method name to the exception it should raise.
    ``hold(method)`` parks calls to that method until the returned event is set.
    """

    def __init__(self):
        self.articles: dict[str, dict[str, Any]] = {}
        self.collections: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self._ids = itertools.count(1)

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        exc = self.failures.get(method)
        if exc is not None:
            raise exc

    def seed_article(self, **fields) -> str:
        new_id = f"a{next(self._ids)}"
        record = {"url": "https://example.com", "title": "example.com"}
        record.update(fields)
        self.articles[new_id] = record
        return new_id

    def seed_collection(self, name: str, color: str = "#4f46e5") -> str:
        new_id = f"c{next(self._ids)}"
        self.collections[new_id] = {"name": name, "color": color}
        return new_id

    async def insert_article(self, record):
        await self._enter("insert_article", record)
        new_id = f"a{next(self._ids)}"
        self.articles[new_id] = dict(record)
        return new_id

    async def update_article(self, id, fields):
        await self._enter("update_article", id, fields)
        self.articles.setdefault(id, {}).update(fields)

    async def delete_article(self, id):
        await self._enter("delete_article", id)
        self.articles.pop(id, None)

    async def insert_collection(self, record):
        await self._enter("insert_collection", record)
        new_id = f"c{next(self._ids)}"
        self.collections[new_id] = dict(record)
        return new_id

    async def update_collection(self, id, fields):
        await self._enter("update_collection", id, fields)
        self.collections.setdefault(id, {}).update(fields)

    async def delete_collection(self, id):
        await self._enter("delete_collection", id)
        self.collections.pop(id, None)

    async def load_all(self):
        await self._enter("load_all")
        articles = [dict(r, id=k) for k, r in reversed(list(self.articles.items()))]
        collections = [dict(r, id=k) for k, r in self.collections.items()]
        return LoadResult(articles=articles, collections=collections)


class FakeWorker:
    """Scripted EnrichmentService that records every call."""

    def __init__(self):
        self.preview_calls: list[str] = []
        self.preview_completed: list[str] = []
        self.preview_cancelled: list[str] = []
        self.preview_titles: dict[str, str] = {}
        self.preview_error: Optional[Exception] = None
        self.preview_latency = 0.0

        self.analyze_calls: list[tuple[str, float]] = []
        self.analysis = AnalysisResult(
            title="Analyzed title",
            summary="A summary.",
            keywords=["alpha", "beta"],
            category="science",
        )
        self.analyze_error: Optional[Exception] = None
        self.analyze_gate: Optional[asyncio.Event] = None

    async def preview(self, url):
        self.preview_calls.append(url)
        try:
            if self.preview_latency:
                await asyncio.sleep(self.preview_latency)
        except asyncio.CancelledError:
            self.preview_cancelled.append(url)
            raise
        if self.preview_error is not None:
            raise self.preview_error
        self.preview_completed.append(url)
        return PreviewResult(title=self.preview_titles.get(url, f"Title of {url}"))

    async def analyze(self, url, *, timeout):
        self.analyze_calls.append((url, timeout))
        if self.analyze_gate is not None:
            await self.analyze_gate.wait()
        if self.analyze_error is not None:
            raise self.analyze_error
        return self.analysis


class FakeAuth:
    """AuthClient returning a fixed session."""

    def __init__(self, session: Optional[Session] = None):
        self.session = session
        self.get_session_gate: Optional[asyncio.Event] = None
        self.get_session_error: Optional[Exception] = None
        self.sign_out_calls = 0
        self.sign_out_error: Optional[Exception] = None
        self.sign_out_gate: Optional[asyncio.Event] = None

    async def get_session(self):
        if self.get_session_gate is not None:
            await self.get_session_gate.wait()
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session

    async def sign_out(self):
        self.sign_out_calls += 1
        if self.sign_out_gate is not None:
            await self.sign_out_gate.wait()
        if self.sign_out_error is not None:
            raise self.sign_out_error


class RecordingNotifier:
    def __init__(self):
        self.notices: list[tuple[str, NoticeLevel]] = []

    def notify(self, message, level):
        self.notices.append((message, NoticeLevel(level)))

    def messages(self, level: Optional[NoticeLevel] = None) -> list[str]:
        return [m for m, lv in self.notices if level is None or lv == level]


class StubConfirmer:
    def __init__(self, answer: bool = True):
        self.answer = answer
        self.prompts: list[str] = []

    def confirm(self, message):
        self.prompts.append(message)
        return self.answer


class RecordingSurface:
    def __init__(self):
        self.closed = 0

    def close(self):
        self.closed += 1


ALICE = Session(user_id="alice", email="alice@example.com", access_token="tok-a")
BOB = Session(user_id="bob", email="bob@example.com", access_token="tok-b")


async def settle(rounds: int = 5) -> None:
    """Let already-scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def worker():
    return FakeWorker()


@pytest.fixture
def auth():
    return FakeAuth(ALICE)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def confirmer():
    return StubConfirmer()


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def client(gateway, worker, auth, notifier, confirmer, surface):
    """Client wired to fakes, with a short debounce for fast tests."""
    return LinkLensClient(
        gateway, worker, auth, notifier,
        confirmer=confirmer,
        surface=surface,
        preview_delay=0.05,
        analyze_timeout=1.0,
    )
