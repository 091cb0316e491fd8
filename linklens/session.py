"""
Session reconciliation.

Auth notifications (INITIAL_SESSION, SIGNED_IN, SIGNED_OUT,
TOKEN_REFRESHED) arrive in any order relative to the eager session fetch
done at boot, and to the user clicking "sign out". The reconciler turns
all of them into transitions of one small state machine and is the only
component allowed to (re)populate the RecordStore.

Rules:
- The initial session is reconciled once. Whichever of ``boot()`` and the
  INITIAL_SESSION notification consumes the latch first does the work;
  the other one is a no-op.
- A load runs only if forced, if the user differs from the last populated
  user, or if the store is empty.
- One load at a time. A second request for the same user is dropped while
  one is running; a request for a different user supersedes it.
- A load result is applied only if the phase is still signed_in for the
  same user and the load was not superseded. Signing out clears the store
  synchronously, so a load that resolves afterwards is discarded.
- ``sign_out()`` flips to signed_out before the remote call, which makes
  the SIGNED_OUT notification that follows it a no-op.
- TOKEN_REFRESHED only refreshes session metadata for the same user.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .errors import AuthError, StaleResultError
from .protocol import AuthClient, NoticeLevel, Notifier, PersistenceGateway
from .record_store import RecordStore
from .trash import TrashArchive
from .types import Article, Collection, Phase, Session

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


class OneShotLatch:
    """A flag that can be consumed exactly once."""

    def __init__(self):
        self._consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    def consume(self) -> bool:
        """Return True for the first caller only."""
        if self._consumed:
            return False
        self._consumed = True
        return True


class _Load:
    """Token for one in-flight population of the store."""

    def __init__(self, user_id: str):
        self.user_id = user_id


class SessionReconciler:
    """State machine over auth events; sole writer of store ownership."""

    def __init__(
        self,
        store: RecordStore,
        gateway: PersistenceGateway,
        auth: AuthClient,
        notifier: Notifier,
        *,
        archive: Optional[TrashArchive] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._auth = auth
        self._notifier = notifier
        self._archive = archive

        self._phase = Phase.UNINITIALIZED
        self._initialized = False
        self._session: Optional[Session] = None
        self._last_user_id: Optional[str] = None
        self._populated_user_id: Optional[str] = None
        self._initial = OneShotLatch()
        self._load: Optional[_Load] = None
        self._reset_hooks: list[Callable[[], None]] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user_id(self) -> Optional[str]:
        """Current user id, or None when signed out."""
        return self._session.user_id if self._session else None

    @property
    def last_user_id(self) -> Optional[str]:
        """Last user seen signed in; survives reconnects, cleared at sign-out."""
        return self._last_user_id

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    @property
    def loading(self) -> bool:
        return self._load is not None

    def add_reset_hook(self, hook: Callable[[], None]) -> None:
        """Register cleanup that runs on every transition to signed_out."""
        self._reset_hooks.append(hook)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def boot(self) -> None:
        """Eagerly fetch the initial session, unless a notification beat us to it."""
        if self._initial.consumed:
            self._initialized = True
            return
        try:
            session = await self._auth.get_session()
            if not self._initial.consume():
                logger.debug("Initial session already reconciled by notification")
                return
            await self._handle_session(session, force_reload=True)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Boot session check failed: %s", e)
            self._report("Session check", e)
            if self._session is None:
                self._clear()
        finally:
            self._initialized = True
            if self._phase == Phase.UNINITIALIZED:
                self._phase = Phase.SIGNED_IN if self._session else Phase.SIGNED_OUT

    async def handle_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        """Feed one auth notification into the state machine."""
        event = AuthEvent(event)
        try:
            if event == AuthEvent.INITIAL_SESSION:
                if not self._initial.consume():
                    logger.debug("Ignoring duplicate initial session")
                    return
                self._initialized = True
                await self._handle_session(session, force_reload=self._store.is_empty())
                return

            if event == AuthEvent.SIGNED_IN:
                await self._handle_session(session, force_reload=True)
                return

            if event == AuthEvent.SIGNED_OUT:
                if self._phase == Phase.SIGNED_OUT:
                    return
                self._clear()
                self._initialized = True
                return

            if event == AuthEvent.TOKEN_REFRESHED:
                if session is not None and self.user_id == session.user_id:
                    self._session = session
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Auth state error on %s: %s", event.value, e)
            self._report("Auth handling", e)

    async def sign_out(self) -> None:
        """User-requested sign-out; local state is cleared before the remote call."""
        self._clear()
        self._initialized = False
        self._initial = OneShotLatch()
        try:
            await self._auth.sign_out()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Remote sign-out failed: %s", e)
        self._notifier.notify("Signed out", NoticeLevel.INFO)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _report(self, action: str, exc: Exception) -> None:
        if isinstance(exc, AuthError):
            self._notifier.notify("Session expired", NoticeLevel.ERR)
        else:
            self._notifier.notify(f"{action} failed: {exc}", NoticeLevel.ERR)

    def _clear(self) -> None:
        """Transition to signed_out. Synchronous by contract."""
        self._phase = Phase.SIGNED_OUT
        self._session = None
        self._last_user_id = None
        self._populated_user_id = None
        self._load = None
        self._store.clear()
        self._run_reset_hooks()

    def _run_reset_hooks(self) -> None:
        for hook in self._reset_hooks:
            try:
                hook()
            except Exception as e:
                logger.warning("Reset hook failed: %s", e)

    async def _handle_session(self, session: Optional[Session], *, force_reload: bool) -> None:
        if session is None or not session.user_id:
            self._clear()
            return

        user_id = session.user_id
        should_load = (
            force_reload
            or self._populated_user_id != user_id
            or self._store.is_empty()
        )
        if self._session is not None and self._session.user_id != user_id:
            # Identity changed without a sign-out in between
            logger.info("User changed; dropping data of previous user")
            self._store.clear()
            self._populated_user_id = None
            self._run_reset_hooks()
        self._session = session
        self._last_user_id = user_id
        self._phase = Phase.SIGNED_IN

        if not should_load:
            return
        if self._load is not None and self._load.user_id == user_id:
            logger.debug("Load already running for %s; dropping request", user_id)
            return
        await self._populate(_Load(user_id))

    def _is_current_load(self, load: _Load) -> bool:
        return (
            self._load is load
            and self._phase == Phase.SIGNED_IN
            and self.user_id == load.user_id
        )

    async def _populate(self, load: _Load) -> None:
        self._load = load
        try:
            try:
                data = await self._gateway.load_all()
            except Exception as e:
                if not self._is_current_load(load):
                    raise StaleResultError(f"load failed after session change: {e}") from e
                raise
            if not self._is_current_load(load):
                raise StaleResultError("session changed during load")

            articles = [Article.from_record(r) for r in data.articles]
            collections = [Collection.from_record(r) for r in data.collections]
            trash = self._archive.load(load.user_id) if self._archive else []
            self._store.replace_all(articles, collections, trash, owner=load.user_id)
            self._populated_user_id = load.user_id
            logger.info(
                "Loaded %d articles, %d collections for %s",
                len(articles), len(collections), load.user_id,
            )
        except StaleResultError as e:
            logger.debug("Discarding load result: %s", e)
        finally:
            if self._load is load:
                self._load = None
