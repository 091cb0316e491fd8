"""
CLI interface for saved links.

Usage:
    linklens save https://example.com/post --tag reading
    linklens list
    linklens trash <id>
    linklens restore <id>
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from typing_extensions import Annotated

from .client import LinkLensClient
from .config import get_store_path, load_or_create_config
from .errors import log_exception
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .protocol import NoticeLevel
from .types import COLLECTION_COLORS, Article, Category, Session, Status

T = TypeVar("T")

LOCAL_USER = "local"

# Configure quiet mode by default (suppress verbose library output)
# Set LINKLENS_VERBOSE=1 to enable debug mode via environment
if os.environ.get("LINKLENS_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


# Global state for CLI options
_store_override: Optional[Path] = None
_assume_yes = False


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


def _yes_callback(value: bool):
    global _assume_yes
    _assume_yes = value


app = typer.Typer(
    name="linklens",
    help="Save, enrich and organize web links.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="LINKLENS_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
    )] = None,
    yes: Annotated[bool, typer.Option(
        "--yes", "-y",
        help="Answer yes to confirmation prompts",
        callback=_yes_callback,
    )] = False,
):
    """Save, enrich and organize web links."""


class LocalAuth:
    """Single-user session for the local store."""

    def __init__(self, user_id: str = LOCAL_USER):
        self._user_id = user_id

    async def get_session(self) -> Optional[Session]:
        return Session(user_id=self._user_id, email=f"{self._user_id}@localhost")

    async def sign_out(self) -> None:
        pass


class EchoNotifier:
    def notify(self, message: str, level: NoticeLevel) -> None:
        typer.echo(message, err=(level != NoticeLevel.OK))


class PromptConfirmer:
    def confirm(self, message: str) -> bool:
        return _assume_yes or typer.confirm(message)


def _run(action: Callable[[LinkLensClient], Awaitable[T]], context: str) -> T:
    """Open the local client, sign in, run one action, close."""
    store_path = get_store_path(_store_override)

    async def main() -> T:
        config = load_or_create_config(store_path)
        ops_handler = configure_ops_log(store_path)
        try:
            client = LinkLensClient.local(
                config, LocalAuth(), EchoNotifier(), confirmer=PromptConfirmer(),
            )
            try:
                await client.session.boot()
                return await action(client)
            finally:
                await client.aclose()
        finally:
            logging.getLogger("linklens").removeHandler(ops_handler)
            ops_handler.close()

    try:
        return asyncio.run(main())
    except typer.Exit:
        raise
    except Exception as e:
        log_path = log_exception(e, context)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise typer.Exit(1)


def _format_article(article: Article) -> str:
    star = "*" if article.starred else " "
    unread = "" if article.status == Status.READ else " (unread)"
    line = f"{article.id}  {star} [{article.category.value}] {article.title}{unread}"
    if article.tags:
        line += "  " + " ".join(f"#{t}" for t in article.tags)
    return line


def _require(article: Optional[Article], id: str) -> Article:
    if article is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    return article


@app.command()
def save(
    url: Annotated[str, typer.Argument(help="URL to save")],
    title: Annotated[Optional[str], typer.Option(
        "--title", help="Title (default: detected from the page)"
    )] = None,
    tags: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t", help="Tag (can be repeated)"
    )] = None,
    category: Annotated[Category, typer.Option(
        "--category", "-c", help="Category"
    )] = Category.TECH,
    memo: Annotated[str, typer.Option("--memo", help="Private note")] = "",
    enrich: Annotated[bool, typer.Option(
        "--enrich/--no-enrich", help="Run AI analysis after saving"
    )] = True,
):
    """Save a link."""

    async def action(client: LinkLensClient) -> None:
        draft = client.articles.open_entry()
        draft.url = url
        if title:
            draft.edit_title(title)
        draft.memo = memo
        draft.category = category
        for tag in tags or []:
            draft.add_tag(tag)
        article = await client.articles.save_article()
        if article is None:
            raise typer.Exit(1)
        if enrich:
            await client.enrichment.wait()
        else:
            client.enrichment.cancel_all()
        typer.echo(_format_article(client.store.get(article.id) or article))

    _run(action, "save")


@app.command("list")
def list_articles(
    trash: Annotated[bool, typer.Option("--trash", help="List the trash instead")] = False,
    starred: Annotated[bool, typer.Option("--starred", help="Only starred articles")] = False,
    collection: Annotated[Optional[str], typer.Option(
        "--collection", help="Only articles in this collection id"
    )] = None,
):
    """List saved articles, most recent first."""

    async def action(client: LinkLensClient) -> None:
        items = client.store.trash if trash else client.store.articles
        if starred:
            items = [a for a in items if a.starred]
        if collection:
            items = [a for a in items if collection in a.collections]
        for article in items:
            typer.echo(_format_article(article))

    _run(action, "list")


@app.command("open")
def open_article(id: Annotated[str, typer.Argument(help="Article id")]):
    """Show an article and mark it read."""

    async def action(client: LinkLensClient) -> None:
        article = _require(await client.articles.open_article(id), id)
        typer.echo(article.title)
        typer.echo(article.url)
        if article.source:
            typer.echo(f"source: {article.source}")
        typer.echo(f"date: {article.date}")
        if article.summary:
            typer.echo(f"\n{article.summary}")
        if article.keywords:
            typer.echo("\nkeywords: " + ", ".join(article.keywords))
        if article.memo:
            typer.echo(f"\nmemo: {article.memo}")

    _run(action, "open")


@app.command()
def star(id: Annotated[str, typer.Argument(help="Article id")]):
    """Toggle the star on an article."""

    async def action(client: LinkLensClient) -> None:
        _require(client.store.get(id), id)
        await client.articles.toggle_star(id)

    _run(action, "star")


@app.command()
def rate(
    id: Annotated[str, typer.Argument(help="Article id")],
    rating: Annotated[int, typer.Argument(min=0, max=5, help="Rating 0-5")],
):
    """Rate an article."""

    async def action(client: LinkLensClient) -> None:
        _require(client.store.get(id), id)
        await client.articles.set_rating(id, rating)

    _run(action, "rate")


@app.command()
def tag(
    id: Annotated[str, typer.Argument(help="Article id")],
    tags: Annotated[list[str], typer.Argument(help="Tags to add")],
):
    """Add tags to an article."""

    async def action(client: LinkLensClient) -> None:
        _require(client.store.get(id), id)
        for value in tags:
            await client.articles.add_tag(id, value)

    _run(action, "tag")


@app.command("trash")
def move_to_trash(id: Annotated[str, typer.Argument(help="Article id")]):
    """Move an article to the trash."""

    async def action(client: LinkLensClient) -> None:
        _require(client.store.get(id), id)
        if not await client.trash.move_to_trash(id):
            raise typer.Exit(1)

    _run(action, "trash")


@app.command()
def restore(id: Annotated[str, typer.Argument(help="Trashed article id")]):
    """Restore an article from the trash (it gets a new id)."""

    async def action(client: LinkLensClient) -> None:
        _require(client.store.get_trashed(id), id)
        article = await client.trash.restore_from_trash(id)
        if article is None:
            raise typer.Exit(1)
        typer.echo(_format_article(article))

    _run(action, "restore")


@app.command()
def purge(id: Annotated[str, typer.Argument(help="Trashed article id")]):
    """Delete one article from the trash permanently."""

    async def action(client: LinkLensClient) -> None:
        _require(client.store.get_trashed(id), id)
        client.trash.delete_forever(id)

    _run(action, "purge")


@app.command("empty-trash")
def empty_trash():
    """Delete everything in the trash permanently."""

    async def action(client: LinkLensClient) -> None:
        count = client.trash.empty_trash()
        typer.echo(f"{count} removed", err=True)

    _run(action, "empty-trash")


@app.command("collections")
def list_collections():
    """List collections with their article counts."""

    async def action(client: LinkLensClient) -> None:
        for col in client.store.collections:
            count = len(client.store.articles_in_collection(col.id))
            typer.echo(f"{col.id}  {col.name}  {col.color}  ({count})")

    _run(action, "collections")


@app.command("collection-add")
def collection_add(
    name: Annotated[str, typer.Argument(help="Collection name")],
    color: Annotated[Optional[str], typer.Option(
        "--color", help=f"One of: {', '.join(COLLECTION_COLORS)}"
    )] = None,
):
    """Create a collection."""

    async def action(client: LinkLensClient) -> None:
        col = await client.collections.save_collection(name, color)
        if col is None:
            raise typer.Exit(1)
        typer.echo(col.id)

    _run(action, "collection-add")


@app.command("collection-delete")
def collection_delete(id: Annotated[str, typer.Argument(help="Collection id")]):
    """Delete a collection (its articles are kept)."""

    async def action(client: LinkLensClient) -> None:
        if client.store.get_collection(id) is None:
            typer.echo(f"Not found: {id}", err=True)
            raise typer.Exit(1)
        if not await client.collections.delete_collection(id):
            raise typer.Exit(1)

    _run(action, "collection-delete")


@app.command()
def assign(
    id: Annotated[str, typer.Argument(help="Article id")],
    collection_id: Annotated[str, typer.Argument(help="Collection id")],
):
    """Toggle an article's membership in a collection."""

    async def action(client: LinkLensClient) -> None:
        _require(client.store.get(id), id)
        if client.store.get_collection(collection_id) is None:
            typer.echo(f"Not found: {collection_id}", err=True)
            raise typer.Exit(1)
        if not await client.articles.toggle_collection(id, collection_id):
            raise typer.Exit(1)

    _run(action, "assign")


def main():
    app()


if __name__ == "__main__":
    main()
