"""
Data types for saved links.
"""

import time
from dataclasses import dataclass, field, fields
from datetime import date
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

from .errors import ValidationError


class Category(str, Enum):
    TECH = "tech"
    BUSINESS = "business"
    SCIENCE = "science"
    DESIGN = "design"
    CULTURE = "culture"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str], default: "Category" = None) -> "Category":
        """Map a stored or remote category string onto the enumeration.

        Unknown values fall back to ``default`` (or OTHER).
        """
        if isinstance(value, Category):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return default if default is not None else cls.OTHER


class Status(str, Enum):
    UNREAD = "unread"
    READ = "read"


class Phase(str, Enum):
    """Lifecycle phase of the authentication session."""
    UNINITIALIZED = "uninitialized"
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


# Fixed palette for collection colors
COLLECTION_COLORS = (
    "#4f46e5",
    "#0891b2",
    "#059669",
    "#d97706",
    "#dc2626",
    "#db2777",
    "#7c3aed",
    "#475569",
)

MAX_RATING = 5


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def today() -> str:
    """Current calendar date as YYYY-MM-DD."""
    return date.today().isoformat()


def is_valid_url(url: str) -> bool:
    """True for a well-formed absolute URL (scheme and host present)."""
    if not url or any(c.isspace() for c in url):
        return False
    try:
        parsed = urlparse(url)
        # Accessing .port validates the netloc
        parsed.port
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.hostname)


def validate_url(url: str) -> str:
    """Return the trimmed URL, or raise ValidationError with a user-facing message."""
    url = (url or "").strip()
    if not url:
        raise ValidationError("Enter a URL")
    if not is_valid_url(url):
        raise ValidationError("Enter a valid URL")
    return url


def validate_collection_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Enter a collection name")
    return name


def get_domain(url: str) -> str:
    """Hostname of ``url`` without a leading ``www.``; empty if unparsable."""
    if not is_valid_url(url):
        return ""
    host = urlparse(url).hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host


def clean_tag(raw: str) -> str:
    """Normalize user tag input: trim and drop a leading '#'."""
    value = raw.strip()
    if value.startswith("#"):
        value = value[1:].strip()
    return value


@dataclass
class Collection:
    """A named, colored grouping of articles."""
    id: Optional[str]
    name: str
    color: str = COLLECTION_COLORS[0]

    def to_record(self) -> dict[str, Any]:
        return {"name": self.name, "color": self.color}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Collection":
        return cls(
            id=record.get("id"),
            name=record.get("name", ""),
            color=record.get("color") or COLLECTION_COLORS[0],
        )


@dataclass
class Article:
    """
    A saved web reference.

    ``id`` is assigned by the persistence layer and is None until the first
    successful insert. ``trashed_at`` (epoch milliseconds) is set only while
    the article sits in the trash.
    """
    url: str
    title: str
    id: Optional[str] = None
    source: str = ""
    summary: str = ""
    keywords: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    category: Category = Category.TECH
    status: Status = Status.UNREAD
    starred: bool = False
    rating: int = 0
    collections: list[str] = field(default_factory=list)
    memo: str = ""
    date: str = field(default_factory=today)
    trashed_at: Optional[int] = None

    def __post_init__(self):
        self.category = Category.parse(self.category)
        self.status = Status(self.status)
        validate_rating(self.rating)

    def to_record(self) -> dict[str, Any]:
        """Persisted attribute set (no id, no trash stamp)."""
        return {
            "url": self.url,
            "title": self.title,
            "source": self.source,
            "summary": self.summary,
            "keywords": list(self.keywords),
            "tags": list(self.tags),
            "category": self.category.value,
            "status": self.status.value,
            "starred": self.starred,
            "rating": self.rating,
            "collections": list(self.collections),
            "memo": self.memo,
            "date": self.date,
        }

    def to_dict(self) -> dict[str, Any]:
        """Full representation including id and trash stamp."""
        d = self.to_record()
        d["id"] = self.id
        if self.trashed_at is not None:
            d["trashed_at"] = self.trashed_at
        return d

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Article":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in record.items() if k in known}
        kwargs.setdefault("title", record.get("url", ""))
        return cls(**kwargs)

    def apply(self, updates: dict[str, Any]) -> None:
        """Merge a partial field update into this article."""
        for key, value in updates.items():
            if key == "category":
                value = Category.parse(value, self.category)
            elif key == "status":
                value = Status(value)
            elif key == "rating":
                validate_rating(value)
            setattr(self, key, value)


def validate_rating(rating: int) -> None:
    if not isinstance(rating, int) or isinstance(rating, bool) or not 0 <= rating <= MAX_RATING:
        raise ValidationError(f"Rating must be an integer 0-{MAX_RATING}: {rating!r}")


@dataclass
class ArticleDraft:
    """State of the add-article entry form."""
    url: str = ""
    title: str = ""
    title_edited: bool = False
    memo: str = ""
    category: Category = Category.TECH
    status: Status = Status.UNREAD
    tags: list[str] = field(default_factory=list)

    def reset(self) -> None:
        self.url = ""
        self.title = ""
        self.title_edited = False
        self.memo = ""
        self.category = Category.TECH
        self.status = Status.UNREAD
        self.tags = []

    def edit_title(self, text: str) -> None:
        """User typed into the title field; previews stop overwriting it."""
        self.title = text
        self.title_edited = True

    def add_tag(self, raw: str) -> bool:
        value = clean_tag(raw)
        if not value or value in self.tags:
            return False
        self.tags.append(value)
        return True

    def remove_tag(self, index: int) -> None:
        if 0 <= index < len(self.tags):
            del self.tags[index]


@dataclass
class Session:
    """An authenticated session as reported by the auth client."""
    user_id: str
    email: str = ""
    access_token: Optional[str] = None
