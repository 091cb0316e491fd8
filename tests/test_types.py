"""Tests for the article model and URL helpers."""

import pytest

from linklens.errors import ValidationError
from linklens.types import (
    Article,
    ArticleDraft,
    Category,
    Collection,
    COLLECTION_COLORS,
    Status,
    clean_tag,
    get_domain,
    is_valid_url,
    validate_collection_name,
    validate_rating,
    validate_url,
)


class TestUrlHelpers:
    def test_valid_absolute_urls(self):
        assert is_valid_url("https://example.com")
        assert is_valid_url("http://news.site/article?id=3")

    @pytest.mark.parametrize("url", [
        "", "example.com", "https://", "not a url", "https://exa mple.com", "http://[::1",
    ])
    def test_invalid_urls(self, url):
        assert not is_valid_url(url)

    def test_domain_strips_www(self):
        assert get_domain("https://www.example.com/path") == "example.com"

    def test_domain_of_article_url(self):
        assert get_domain("https://news.site/article") == "news.site"

    def test_domain_of_garbage_is_empty(self):
        assert get_domain("garbage") == ""

    def test_clean_tag(self):
        assert clean_tag("  #python ") == "python"
        assert clean_tag("#") == ""

    def test_validate_url_messages(self):
        assert validate_url("  https://example.com/a ") == "https://example.com/a"
        with pytest.raises(ValidationError, match="Enter a URL"):
            validate_url("   ")
        with pytest.raises(ValidationError, match="Enter a valid URL"):
            validate_url("example dot com")


class TestValidation:
    def test_rating_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            validate_rating(9)
        with pytest.raises(ValidationError):
            validate_rating(True)
        validate_rating(0)

    def test_collection_name_trimmed(self):
        assert validate_collection_name("  Reading ") == "Reading"
        with pytest.raises(ValidationError, match="collection name"):
            validate_collection_name(" ")


class TestArticle:
    def test_defaults(self):
        a = Article(url="https://example.com", title="Example")
        assert a.id is None
        assert a.status == Status.UNREAD
        assert a.category == Category.TECH
        assert a.rating == 0
        assert a.trashed_at is None
        assert len(a.date) == 10

    def test_record_excludes_id_and_trash_stamp(self):
        a = Article(url="https://example.com", title="Example", id="x1", trashed_at=123)
        record = a.to_record()
        assert "id" not in record
        assert "trashed_at" not in record
        assert record["category"] == "tech"
        assert record["status"] == "unread"

    def test_from_record_keeps_keyword_order_and_duplicates(self):
        a = Article.from_record({
            "id": "x1",
            "url": "https://example.com",
            "title": "Example",
            "keywords": ["b", "a", "b"],
            "category": "science",
            "unknown_column": "ignored",
        })
        assert a.keywords == ["b", "a", "b"]
        assert a.category == Category.SCIENCE

    def test_from_record_without_title_uses_url(self):
        a = Article.from_record({"url": "https://example.com"})
        assert a.title == "https://example.com"

    def test_rating_bounds(self):
        with pytest.raises(ValueError):
            Article(url="https://example.com", title="x", rating=6)
        a = Article(url="https://example.com", title="x")
        with pytest.raises(ValueError):
            a.apply({"rating": -1})

    def test_apply_parses_enums(self):
        a = Article(url="https://example.com", title="x")
        a.apply({"category": "design", "status": "read", "summary": "s"})
        assert a.category == Category.DESIGN
        assert a.status == Status.READ
        assert a.summary == "s"

    def test_unknown_category_falls_back(self):
        assert Category.parse("astrology") == Category.OTHER
        assert Category.parse("astrology", Category.TECH) == Category.TECH
        assert Category.parse(" Business ") == Category.BUSINESS


class TestCollection:
    def test_missing_color_uses_palette_default(self):
        col = Collection.from_record({"id": "c1", "name": "Reading"})
        assert col.color == COLLECTION_COLORS[0]


class TestArticleDraft:
    def test_tags_are_unique_and_cleaned(self):
        draft = ArticleDraft()
        assert draft.add_tag("#python")
        assert not draft.add_tag("python")
        assert not draft.add_tag("   ")
        assert draft.add_tag("async")
        assert draft.tags == ["python", "async"]

    def test_edit_title_sets_manual_flag(self):
        draft = ArticleDraft()
        draft.edit_title("Mine")
        assert draft.title_edited
        draft.reset()
        assert not draft.title_edited
        assert draft.title == ""
        assert draft.tags == []
