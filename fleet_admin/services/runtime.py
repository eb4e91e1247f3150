"""Background event loop that owns every route builder session.

Flask handles requests on worker threads; builder state must only be touched
from one thread. Requests hand their work to this loop and wait for the
local (optimistic) effect, while persistence tasks keep running on the loop
after the response has gone out.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from fleet_admin.route_builder.session import BuilderSession
from fleet_admin.route_builder.store import FleetStore

logger = logging.getLogger(__name__)


class BuilderRuntime:
    def __init__(self, store_factory: Callable[[str], FleetStore], call_timeout: float = 30.0) -> None:
        self._store_factory = store_factory
        self._call_timeout = call_timeout
        self._sessions: Dict[str, BuilderSession] = {}
        self._closers: List[Callable[[], Awaitable[None]]] = []
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_loop, name='route-builder', daemon=True)
        self._thread.start()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Run ``fn`` on the builder loop and wait for its result."""

        async def invoke():
            result = fn(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

        future = asyncio.run_coroutine_threadsafe(invoke(), self._loop)
        return future.result(self._call_timeout)

    def run(self, org_id: str, action: Optional[Callable[[BuilderSession], Any]] = None, drain_notices: bool = True) -> dict:
        """Apply ``action`` to the organisation's session and return its state."""
        state, _ = self.apply(org_id, action, drain_notices)
        return state

    def apply(
        self,
        org_id: str,
        action: Optional[Callable[[BuilderSession], Any]] = None,
        drain_notices: bool = True,
    ) -> Tuple[dict, List[dict]]:
        """Like ``run``, but also return the notices ``action`` itself posted.

        Notices left by earlier background work stay in the state but are not
        attributed to this action.
        """

        async def invoke():
            session = await self._session(org_id)
            queued = len(session.notices)
            if action is not None:
                result = action(session)
                if inspect.isawaitable(result):
                    await result
            state = session.snapshot(drain_notices)
            return state, state['notices'][queued:]

        return self.call(invoke)

    def session(self, org_id: str) -> BuilderSession:
        return self.call(self._session, org_id)

    async def _session(self, org_id: str) -> BuilderSession:
        session = self._sessions.get(org_id)
        if session is None:
            logger.info('Opening route builder session for %s', org_id)
            session = BuilderSession(self._store_factory(org_id))
            self._sessions[org_id] = session
        if not session.loaded:
            await session.open()
        return session

    def wait_idle(self, org_id: str) -> None:
        session = self._sessions.get(org_id)
        if session is not None:
            self.call(session.wait_idle)

    def has_session(self, org_id: str) -> bool:
        return org_id in self._sessions

    def close_on_shutdown(self, closer: Callable[[], Awaitable[None]]) -> None:
        """Register a coroutine function run on the loop during ``shutdown``."""
        self._closers.append(closer)

    def end_session(self, org_id: str) -> None:
        """Stop listening for the organisation and forget its builder state."""

        async def end():
            session = self._sessions.pop(org_id, None)
            if session is not None:
                session.close()
                await session.wait_idle()
                logger.info('Closed route builder session for %s', org_id)

        self.call(end)

    def shutdown(self) -> None:
        if self._loop.is_closed():
            return

        async def close_all():
            for session in self._sessions.values():
                session.close()
                await session.wait_idle()
            self._sessions.clear()
            for closer in self._closers:
                await closer()

        try:
            self.call(close_all)
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=5)
            self._loop.close()
