"""User-visible notifications raised by the stores."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field

from .client import AuthenticationError, SessionExpiredError

AUTH_MARKERS = ("認証", "auth")


@dataclass
class Notification:
    level: str  # "success" | "error" | "info"
    title: str
    description: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Notifier:
    """Collects notifications for the current request."""
    items: list[Notification] = field(default_factory=list)

    def success(self, title: str, description: str = "") -> None:
        self.items.append(Notification("success", title, description))

    def error(self, title: str, description: str = "") -> None:
        self.items.append(Notification("error", title, description))

    def info(self, title: str, description: str = "") -> None:
        self.items.append(Notification("info", title, description))

    def drain(self) -> list[Notification]:
        items, self.items = self.items, []
        return items


def is_auth_error(exc: BaseException) -> bool:
    """True for session/authentication failures."""
    if isinstance(exc, (AuthenticationError, SessionExpiredError)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in AUTH_MARKERS)

