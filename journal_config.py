from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_SESSION_FILE = Path.home() / ".trading_journal_session.json"


@dataclass(slots=True)
class JournalClientConfig:
    api_base_url: str = "http://localhost:5000"
    ws_url: str = "ws://localhost:5000/ws"
    request_timeout_seconds: float = 8.0
    search_debounce_seconds: float = 0.5
    default_page_size: int = 10
    notification_limit: int = 5
    ws_max_reconnect_attempts: int = 5
    ws_reconnect_delay_seconds: float = 1.0
    session_file: Path = DEFAULT_SESSION_FILE


def load_journal_environment(env_file: str = ".env") -> JournalClientConfig:
    load_dotenv(env_file, override=False)

    return JournalClientConfig(
        api_base_url=os.getenv("JOURNAL_API_BASE_URL", "http://localhost:5000").rstrip("/"),
        ws_url=os.getenv("JOURNAL_WS_URL", "ws://localhost:5000/ws"),
        request_timeout_seconds=float(os.getenv("JOURNAL_REQUEST_TIMEOUT_SECONDS", "8")),
        search_debounce_seconds=float(os.getenv("JOURNAL_SEARCH_DEBOUNCE_SECONDS", "0.5")),
        default_page_size=int(os.getenv("JOURNAL_DEFAULT_PAGE_SIZE", "10")),
        notification_limit=int(os.getenv("JOURNAL_NOTIFICATION_LIMIT", "5")),
        ws_max_reconnect_attempts=int(os.getenv("JOURNAL_WS_MAX_RECONNECT_ATTEMPTS", "5")),
        ws_reconnect_delay_seconds=float(os.getenv("JOURNAL_WS_RECONNECT_DELAY_SECONDS", "1.0")),
        session_file=Path(
            os.path.expanduser(os.getenv("JOURNAL_SESSION_FILE", str(DEFAULT_SESSION_FILE)))
        ),
    )
