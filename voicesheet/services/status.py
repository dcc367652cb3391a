"""Transient success / error banners shown to the operator.

One slot per kind: a new message replaces the previous one. Messages expire
on their own and never gate workflow transitions.
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum


class BannerKind(StrEnum):
    success = "success"
    error = "error"


@dataclass(frozen=True)
class Banner:
    kind: BannerKind
    text: str
    expires_at: float


class StatusBoard:
    """Holds at most one success and one error banner.

    Args:
        success_ttl: Seconds a success banner stays visible.
        error_ttl: Seconds an error banner stays visible.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        success_ttl: float = 3.0,
        error_ttl: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = {BannerKind.success: success_ttl, BannerKind.error: error_ttl}
        self._clock = clock
        self._slots: dict[BannerKind, Banner] = {}

    def show_success(self, text: str) -> Banner:
        return self._show(BannerKind.success, text)

    def show_error(self, text: str) -> Banner:
        return self._show(BannerKind.error, text)

    def _show(self, kind: BannerKind, text: str) -> Banner:
        banner = Banner(kind=kind, text=text, expires_at=self._clock() + self._ttl[kind])
        self._slots[kind] = banner
        return banner

    def current(self, kind: BannerKind) -> Banner | None:
        """Visible banner of ``kind``, dropping it once expired."""
        banner = self._slots.get(kind)
        if banner is None:
            return None
        if self._clock() >= banner.expires_at:
            del self._slots[kind]
            return None
        return banner

    @property
    def success(self) -> str | None:
        banner = self.current(BannerKind.success)
        return banner.text if banner else None

    @property
    def error(self) -> str | None:
        banner = self.current(BannerKind.error)
        return banner.text if banner else None

    def clear(self) -> None:
        self._slots.clear()
