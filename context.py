"""
Per-run context passed down the call chain instead of module globals.
Holds the provider list resolved once per run, the shared HTTP session used
for image downloads, and the cancellation signal.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

import requests

from config import NETWORK

if TYPE_CHECKING:
    from providers.base import ImageProvider


def create_session(user_agent: Optional[str] = None) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": user_agent or NETWORK["user_agent"]})
    return session


@dataclass
class RunContext:
    session: requests.Session = field(default_factory=create_session)
    providers: List["ImageProvider"] = field(default_factory=list)
    # threading.Event so SIGINT handlers and other threads can set it safely
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def close(self) -> None:
        self.session.close()
        for provider in self.providers:
            provider.session.close()
