from __future__ import annotations

import logging
from dataclasses import dataclass, field

from core.session_store import SessionStore
from journal_config import JournalClientConfig, load_journal_environment

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClientContext:
    """Process-wide state shared by the gateway, list controllers and channel.

    Holds the session store and the reachability flags: ``backend_reachable``
    follows the latest gateway call, ``backend_confirmed`` latches once any
    call has succeeded.  Components receive it through their constructor
    instead of reading globals.
    """

    config: JournalClientConfig
    session: SessionStore
    backend_reachable: bool = False
    backend_confirmed: bool = False
    _reachability_listeners: list = field(default_factory=list)

    @classmethod
    def init(cls, config: JournalClientConfig | None = None, *, persist: bool = True) -> "ClientContext":
        config = config or load_journal_environment()
        session = SessionStore(config.session_file if persist else None)
        session.load()
        return cls(config=config, session=session)

    def mark_reachable(self, reachable: bool) -> None:
        if reachable:
            self.backend_confirmed = True
        if reachable == self.backend_reachable:
            return
        self.backend_reachable = reachable
        logger.info("Backend %s", "reachable" if reachable else "offline")
        for listener in list(self._reachability_listeners):
            listener(reachable)

    def on_reachability_change(self, callback) -> None:
        self._reachability_listeners.append(callback)

    def clear(self) -> None:
        """Tear down: drop credentials and forget reachability."""
        self.session.clear()
        self.backend_reachable = False
        self.backend_confirmed = False


# Global instance
_context: ClientContext | None = None


def get_client_context(config: JournalClientConfig | None = None) -> ClientContext:
    global _context
    if _context is None:
        _context = ClientContext.init(config)
    return _context


def reset_client_context() -> None:
    """Forget the shared context without touching the persisted session."""
    global _context
    _context = None
