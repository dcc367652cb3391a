"""
Asynchronous HTTP client for the extraction backend API.

Uses ``httpx.AsyncClient`` so that the workflow controller never blocks the
event loop that also drives audio capture.
"""

import logging
from collections.abc import Callable

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from voicesheet.core.config import get_settings
from voicesheet.core.exceptions import (
    APIError,
    ExtractionError,
    InvalidFormatError,
    PersistError,
    SessionNotFoundError,
    VoiceSheetError,
)
from voicesheet.core.models import (
    AudioPayload,
    ConfirmResult,
    CreatedSession,
    MultiRowExtraction,
    RowData,
    RowUpdateResult,
    SessionState,
    SessionStats,
    SheetRows,
    SingleRowExtraction,
    SkipResult,
    UploadResult,
    parse_extraction,
)

logger = logging.getLogger(__name__)

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

StatusMapper = Callable[[int, str], VoiceSheetError]

TRANSIENT_ERRORS = (httpx.ConnectError, httpx.TimeoutException)


def _error_detail(response: httpx.Response) -> str:
    """Pull the backend's ``detail`` message out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.text or f"HTTP {response.status_code}"


class APIClient:
    """Thin async wrapper around httpx for calling the extraction backend.

    All methods return parsed pydantic models (or raw bytes for downloads)
    and raise a ``VoiceSheetError`` subclass on failure: ``APIError`` for
    transport problems, and the operation's own error kind for rejected
    requests.

    Args:
        base_url: Versioned API root, e.g. ``http://localhost:8000/api/v1``.
        timeout: Default request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._server_root = self._base_url.split("/api/", 1)[0]
        self._audio_timeout = settings.audio_timeout
        self._upload_timeout = settings.upload_timeout
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout or settings.request_timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        on_status: StatusMapper | None = None,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with user-friendly error handling.

        Args:
            method: HTTP method name ("get", "post", "patch", "delete").
            path: Endpoint path relative to the API root, or an absolute URL.
            on_status: Maps a non-2xx status and its detail to a domain error.
            **kwargs: Passed through to httpx (json, files, data, timeout, ...).

        Raises:
            APIError: On connection, timeout, or network errors, and on HTTP
                errors when ``on_status`` is not given.
            VoiceSheetError: Whatever ``on_status`` returns for HTTP errors.
        """
        send = self._send_with_retry if method == "get" else self._send
        try:
            resp = await send(method, path, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.ConnectError:
            raise APIError(
                "Backend server is not running. "
                f"Check that it is reachable at {self._server_root}",
                category="connection",
            ) from None
        except httpx.TimeoutException:
            raise APIError(
                "Request timed out. The server may be overloaded.",
                category="timeout",
            ) from None
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = _error_detail(exc.response)
            logger.info("%s %s -> %s: %s", method.upper(), path, status, detail)
            if on_status is not None:
                raise on_status(status, detail) from None
            raise APIError(detail, category="http", status_code=status) from None
        except httpx.HTTPError as exc:
            raise APIError(f"Network error: {exc}", category="network") from None

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await getattr(self._client, method)(path, **kwargs)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    async def _send_with_retry(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send an idempotent request, retrying connect errors and timeouts."""
        return await self._send(method, path, **kwargs)

    @staticmethod
    def _parse(
        model: type[BaseModel],
        resp: httpx.Response,
        error: Callable[[str], VoiceSheetError],
    ):
        try:
            return model.model_validate(resp.json())
        except (ValidationError, ValueError) as exc:
            raise error(f"Unexpected response from backend: {exc}") from None

    # -- health --

    async def health_check(self) -> dict:
        return (await self._request("get", f"{self._server_root}/health")).json()

    async def check_connection(self) -> tuple[bool, str]:
        """Check if the backend is reachable. Returns (ok, message)."""
        try:
            await self.health_check()
            return True, "Connected"
        except APIError as exc:
            return False, exc.message

    # -- sessions --

    async def create_session(self) -> CreatedSession:
        resp = await self._request("post", "/sessions/", on_status=lambda _s, d: PersistError(d))
        return self._parse(CreatedSession, resp, PersistError)

    async def get_session(self, session_id: str) -> SessionState:
        def on_status(status: int, detail: str) -> VoiceSheetError:
            if status == 404:
                return SessionNotFoundError(session_id)
            return APIError(detail, category="http", status_code=status)

        resp = await self._request("get", f"/sessions/{session_id}", on_status=on_status)
        try:
            body = resp.json()
            if isinstance(body, dict):
                body.setdefault("session_id", session_id)
            return SessionState.model_validate(body)
        except (ValidationError, ValueError) as exc:
            raise APIError(f"Unexpected session payload: {exc}", category="http") from None

    async def get_stats(self, session_id: str) -> SessionStats:
        resp = await self._request(
            "get", f"/sessions/{session_id}/stats", on_status=lambda _s, d: PersistError(d)
        )
        return self._parse(SessionStats, resp, PersistError)

    # -- dataset --

    async def upload_dataset(self, session_id: str, filename: str, content: bytes) -> UploadResult:
        def on_status(status: int, detail: str) -> VoiceSheetError:
            if 400 <= status < 500:
                return InvalidFormatError(detail)
            return APIError(detail, category="http", status_code=status)

        resp = await self._request(
            "post",
            f"/excel/upload/{session_id}",
            on_status=on_status,
            files={"file": (filename, content, XLSX_MIME)},
            timeout=self._upload_timeout,
        )
        return self._parse(UploadResult, resp, InvalidFormatError)

    async def download_dataset(self, session_id: str) -> bytes:
        resp = await self._request(
            "get", f"/excel/download/{session_id}", on_status=lambda _s, d: PersistError(d)
        )
        return resp.content

    # -- audio --

    async def process_audio(
        self,
        session_id: str,
        payload: AudioPayload,
        row_number: int,
    ) -> SingleRowExtraction | MultiRowExtraction:
        """Send a finalized recording for transcription and field extraction."""
        resp = await self._request(
            "post",
            f"/audio/process/{session_id}",
            on_status=lambda _s, d: ExtractionError(d),
            files={"file": (payload.filename, payload.data, payload.mime_type)},
            data={"row_number": str(row_number)},
            timeout=self._audio_timeout,
        )
        try:
            body = resp.json()
        except ValueError:
            raise ExtractionError("Backend returned a non-JSON extraction result") from None
        return parse_extraction(body)

    # -- rows --

    async def confirm_row(
        self,
        session_id: str,
        row_number: int,
        data: RowData,
        auto_advance: bool = True,
    ) -> ConfirmResult:
        resp = await self._request(
            "post",
            f"/rows/{session_id}/{row_number}/confirm",
            on_status=lambda _s, d: PersistError(d),
            json={"data": data, "auto_advance": auto_advance},
        )
        return self._parse(ConfirmResult, resp, PersistError)

    async def skip_row(self, session_id: str) -> SkipResult:
        resp = await self._request(
            "post", f"/rows/{session_id}/skip", on_status=lambda _s, d: PersistError(d)
        )
        return self._parse(SkipResult, resp, PersistError)

    async def go_to_row(self, session_id: str, row_number: int) -> SkipResult:
        resp = await self._request(
            "post",
            f"/rows/{session_id}/goto/{row_number}",
            on_status=lambda _s, d: PersistError(d),
        )
        return self._parse(SkipResult, resp, PersistError)

    async def list_rows(self, session_id: str) -> SheetRows:
        """Every stored row of the session, for the sheet table."""
        resp = await self._request(
            "get", f"/rows/{session_id}", on_status=lambda _s, d: PersistError(d)
        )
        return self._parse(SheetRows, resp, PersistError)

    async def update_row(self, session_id: str, row_number: int, data: RowData) -> RowUpdateResult:
        """Overwrite an already stored row with corrected values."""
        resp = await self._request(
            "patch",
            f"/rows/{session_id}/{row_number}",
            on_status=lambda _s, d: PersistError(d),
            json={"data": data},
        )
        return self._parse(RowUpdateResult, resp, PersistError)
