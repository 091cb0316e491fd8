"""Tests for background enrichment of saved articles."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from linklens.client import LinkLensClient
from linklens.enrichment import EnrichmentPipeline
from linklens.errors import TransportError
from linklens.protocol import AnalysisResult, NoticeLevel
from linklens.record_store import RecordStore
from linklens.trash import TrashArchive
from linklens.types import Article, Category


async def save(client, url, title=None):
    client.articles.open_entry()
    client.draft.url = url
    if title is not None:
        client.draft.edit_title(title)
    return await client.articles.save_article()


class TestAfterSave:
    @pytest.mark.asyncio
    async def test_title_filled_by_analysis(self, client, worker, gateway, notifier):
        await client.session.boot()
        article = await save(client, "https://news.site/article")

        assert article.title == "news.site"
        assert client.store.articles[0].title == "news.site"

        await client.enrichment.wait()

        stored = client.store.get(article.id)
        assert stored.title == "Analyzed title"
        assert stored.summary == "A summary."
        assert stored.keywords == ["alpha", "beta"]
        assert stored.category == Category.SCIENCE
        assert gateway.articles[article.id]["title"] == "Analyzed title"
        assert notifier.messages(NoticeLevel.OK) == [
            "Saved. Running AI analysis...",
            "AI analysis complete",
        ]

    @pytest.mark.asyncio
    async def test_manual_title_kept(self, client, worker):
        await client.session.boot()
        article = await save(client, "https://news.site/article", title="My pick")
        await client.enrichment.wait()
        assert client.store.get(article.id).title == "My pick"

    @pytest.mark.asyncio
    async def test_analysis_bounded_by_timeout(self, client, worker):
        await client.session.boot()
        await save(client, "https://example.com/a")
        await client.enrichment.wait()
        assert worker.analyze_calls == [("https://example.com/a", 1.0)]

    @pytest.mark.asyncio
    async def test_failure_keeps_saved_article(self, client, worker, gateway, notifier):
        worker.analyze_error = TransportError("Analysis timed out after 1s")
        await client.session.boot()
        article = await save(client, "https://news.site/article")
        await client.enrichment.wait()

        assert client.store.get(article.id).title == "news.site"
        assert gateway.count("update_article") == 0
        assert notifier.messages(NoticeLevel.INFO) == ["AI analysis failed, but the link was saved"]

    @pytest.mark.asyncio
    async def test_unknown_category_falls_back_to_draft(self, client, worker):
        worker.analysis = AnalysisResult(title="T", summary="", keywords=[], category="astrology")
        await client.session.boot()
        client.articles.open_entry()
        client.draft.url = "https://example.com/x"
        client.draft.category = Category.DESIGN
        article = await client.articles.save_article()
        await client.enrichment.wait()
        assert client.store.get(article.id).category == Category.DESIGN

    @pytest.mark.asyncio
    async def test_sign_out_cancels_enrichment(self, client, worker, gateway, notifier):
        worker.analyze_gate = asyncio.Event()
        await client.session.boot()
        await save(client, "https://example.com/x")
        assert client.enrichment.pending == 1

        await client.session.sign_out()
        worker.analyze_gate.set()
        await asyncio.sleep(0.01)

        assert client.enrichment.pending == 0
        assert gateway.count("update_article") == 0
        assert "AI analysis complete" not in notifier.messages()


class TestPipeline:
    @pytest.mark.asyncio
    async def test_result_discarded_after_store_cleared(self, worker, gateway, notifier):
        store = RecordStore()
        article = Article(url="https://example.com", title="example.com", id="a1")
        store.replace_all([article], [], owner="alice")
        worker.analyze_gate = asyncio.Event()
        pipeline = EnrichmentPipeline(worker, gateway, store, notifier, timeout=1.0)

        pipeline.start("a1", "https://example.com")
        await asyncio.sleep(0)
        store.clear()
        worker.analyze_gate.set()
        await pipeline.wait()

        assert gateway.count("update_article") == 0
        assert notifier.notices == []

    @pytest.mark.asyncio
    async def test_article_removed_meanwhile(self, worker, gateway, notifier):
        store = RecordStore()
        store.replace_all([Article(url="https://example.com", title="x", id="a1")], [])
        pipeline = EnrichmentPipeline(worker, gateway, store, notifier)
        worker.analyze_gate = asyncio.Event()
        pipeline.start("a1", "https://example.com")
        await asyncio.sleep(0)
        store.remove("a1")
        worker.analyze_gate.set()
        await pipeline.wait()

        assert gateway.count("update_article") == 1
        assert store.articles == []
        assert notifier.messages(NoticeLevel.OK) == ["AI analysis complete"]

    @pytest.mark.asyncio
    async def test_empty_analysis_title_uses_domain(self, worker, gateway, notifier):
        worker.analysis = AnalysisResult(title=None, summary=None, keywords=[], category="tech")
        store = RecordStore()
        store.replace_all([Article(url="https://www.example.com/p", title="x", id="a1")], [])
        pipeline = EnrichmentPipeline(worker, gateway, store, notifier)
        pipeline.start("a1", "https://www.example.com/p")
        await pipeline.wait()
        assert store.get("a1").title == "example.com"
        assert store.get("a1").summary == ""

    @pytest.mark.asyncio
    async def test_default_timeout_is_passed_to_service(self, gateway, notifier):
        service = AsyncMock()
        service.analyze.return_value = AnalysisResult(title="T", category="culture")
        store = RecordStore()
        store.replace_all([Article(url="https://example.com", title="x", id="a1")], [])
        pipeline = EnrichmentPipeline(service, gateway, store, notifier)

        pipeline.start("a1", "https://example.com")
        await pipeline.wait()

        service.analyze.assert_awaited_once_with("https://example.com", timeout=25.0)
        assert store.get("a1").category == Category.CULTURE

    @pytest.mark.asyncio
    async def test_hung_service_hits_timeout(self, gateway, notifier):
        class HungService:
            async def analyze(self, url, *, timeout):
                await asyncio.Event().wait()

        store = RecordStore()
        store.replace_all([Article(url="https://example.com", title="x", id="a1")], [])
        pipeline = EnrichmentPipeline(HungService(), gateway, store, notifier, timeout=0.05)

        pipeline.start("a1", "https://example.com")
        await asyncio.wait_for(pipeline.wait(), timeout=2.0)

        assert gateway.count("update_article") == 0
        assert store.get("a1").title == "x"
        assert notifier.messages(NoticeLevel.INFO) == ["AI analysis failed, but the link was saved"]


class TestTrashedMeanwhile:
    @pytest.mark.asyncio
    async def test_trashed_copy_is_enriched(self, tmp_path, gateway, worker, auth, notifier, confirmer):
        archive = TrashArchive(tmp_path)
        client = LinkLensClient(
            gateway, worker, auth, notifier,
            confirmer=confirmer, archive=archive, analyze_timeout=1.0,
        )
        worker.analyze_gate = asyncio.Event()
        await client.session.boot()
        article = await save(client, "https://news.site/article")

        assert await client.trash.move_to_trash(article.id)
        worker.analyze_gate.set()
        await client.enrichment.wait()

        trashed = client.store.get_trashed(article.id)
        assert trashed.title == "Analyzed title"
        assert trashed.category == Category.SCIENCE
        assert trashed.trashed_at is not None
        assert gateway.count("update_article") == 0
        assert article.id not in gateway.articles
        assert [a.title for a in archive.load("alice")] == ["Analyzed title"]
        assert notifier.messages(NoticeLevel.OK)[-1] == "AI analysis complete"
