"""
Event loop and controller plumbing for the Streamlit UI.

Streamlit reruns the page script on every interaction, but microphone
capture runs as asyncio tasks that must outlive a rerun. Each browser
session therefore gets one event loop running in a daemon thread, and the
script submits coroutines to it with ``run()``. Controller state is only
mutated on that loop, so plain method calls go through ``call()`` too.
"""

import asyncio
import logging
import threading
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

import streamlit as st

from voicesheet.core.config import get_settings
from voicesheet.services.audio.capture import AudioCaptureManager
from voicesheet.services.audio.device import SoundDeviceInput
from voicesheet.services.workflow import SessionWorkflowController
from voicesheet.ui.api_client import APIClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoopRunner:
    """Owns an asyncio loop on a background thread."""

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="voicesheet-loop", daemon=True
        )
        self._thread.start()

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = None) -> T:
        """Run ``coro`` on the background loop and wait for its result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a plain callable on the background loop and return its result."""

        async def invoke() -> T:
            return fn(*args)

        return self.run(invoke())

    def close(self, timeout: float = 5.0) -> None:
        """Stop the loop and join its thread; safe to call twice."""
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout)
        if not self._thread.is_alive():
            self._loop.close()


def _build_controller(api_base_url: str) -> SessionWorkflowController:
    settings = get_settings()
    device = SoundDeviceInput(
        sample_rate=settings.sample_rate,
        channels=settings.channels,
        device=settings.input_device or None,
    )
    capture = AudioCaptureManager(
        device,
        sample_rate=settings.sample_rate,
        channels=settings.channels,
        chunk_interval=settings.chunk_interval,
        level_interval=settings.level_interval,
    )
    return SessionWorkflowController(APIClient(base_url=api_base_url), capture=capture)


def get_runner() -> LoopRunner:
    """Return this browser session's loop runner."""
    if "_loop_runner" not in st.session_state:
        st.session_state._loop_runner = LoopRunner()
    return st.session_state._loop_runner


def get_controller(api_base_url: str) -> SessionWorkflowController:
    """Return this browser session's controller, rebuilt when the API URL changes."""
    current = st.session_state.get("_controller")
    if current is not None and st.session_state.get("_controller_url") == api_base_url:
        return current
    if current is not None:
        # Never leave a microphone open behind a replaced controller
        get_runner().run(current.aclose())
    logger.info("Building workflow controller for %s", api_base_url)
    controller = _build_controller(api_base_url)
    st.session_state._controller = controller
    st.session_state._controller_url = api_base_url
    return controller
