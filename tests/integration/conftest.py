"""Integration test fixtures for VoiceSheet.

Provides an in-memory fake of the extraction backend served through
``httpx.MockTransport``, so the real APIClient and workflow controller run
end to end without a server.
"""

import json
import re

import httpx
import pytest

from voicesheet.services.audio.capture import AudioCaptureManager
from voicesheet.services.workflow import SessionWorkflowController
from voicesheet.ui.api_client import APIClient

BASE_URL = "http://backend.test/api/v1"


class FakeBackend:
    """Stateful stand-in for the backend's session, excel, audio and row routes."""

    def __init__(self) -> None:
        self.sessions: dict[str, dict] = {}
        self.extractions: list[dict] = []
        self.confirmed: dict[int, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self._routes = [
            ("POST", r"/sessions/$", self._create_session),
            ("GET", r"/sessions/(?P<sid>[^/]+)$", self._get_session),
            ("POST", r"/excel/upload/(?P<sid>[^/]+)$", self._upload),
            ("GET", r"/excel/download/(?P<sid>[^/]+)$", self._download),
            ("POST", r"/audio/process/(?P<sid>[^/]+)$", self._process),
            ("POST", r"/rows/(?P<sid>[^/]+)/(?P<row>\d+)/confirm$", self._confirm),
            ("POST", r"/rows/(?P<sid>[^/]+)/skip$", self._skip),
            ("POST", r"/rows/(?P<sid>[^/]+)/goto/(?P<row>\d+)$", self._goto),
            ("GET", r"/rows/(?P<sid>[^/]+)$", self._list_rows),
            ("PATCH", r"/rows/(?P<sid>[^/]+)/(?P<row>\d+)$", self._update_row),
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        self.calls.append((request.method, path))
        for method, pattern, route in self._routes:
            match = re.match(pattern, path)
            if request.method == method and match:
                params = match.groupdict()
                sid = params.pop("sid", None)
                if sid is not None and sid not in self.sessions:
                    return httpx.Response(404, json={"detail": "Session not found"})
                return route(request, sid, **params) if sid else route(request)
        return httpx.Response(404, json={"detail": "Not Found"})

    # -- helpers for tests --

    def add_session(self, session_id: str = "s1", headers=None, total_rows: int = 10) -> None:
        excel = None
        if headers is not None:
            excel = {"original_name": "contacts.xlsx", "headers": headers, "total_rows": total_rows}
        self.sessions[session_id] = {"excel_file": excel, "current_row": 1}

    def confirm_calls(self) -> list[str]:
        return [p for m, p in self.calls if p.endswith("/confirm")]

    # -- routes --

    def _create_session(self, request):
        sid = f"s{len(self.sessions) + 1}"
        self.add_session(sid)
        return httpx.Response(200, json={"session_id": sid, "status": "active"})

    def _get_session(self, request, sid):
        session = self.sessions[sid]
        excel = session["excel_file"]
        if excel is not None:
            excel = {**excel, "current_row": session["current_row"]}
        return httpx.Response(
            200,
            json={
                "session_id": sid,
                "status": "active",
                "excel_file": excel,
                "settings": {"language": "ar", "auto_advance": True},
            },
        )

    def _upload(self, request, sid):
        if b"PK" not in request.content:
            return httpx.Response(400, json={"detail": "Invalid Excel file"})
        headers = ["name", "phone"]
        self.sessions[sid]["excel_file"] = {
            "original_name": "contacts.xlsx",
            "headers": headers,
            "total_rows": 10,
        }
        self.sessions[sid]["current_row"] = 1
        return httpx.Response(
            200,
            json={"filename": "contacts.xlsx", "headers": headers, "total_rows": 10},
        )

    def _download(self, request, sid):
        return httpx.Response(200, content=b"PK\x03\x04" + json.dumps(self.confirmed).encode())

    def _process(self, request, sid):
        if not self.extractions:
            return httpx.Response(500, json={"detail": "No speech detected"})
        return httpx.Response(200, json=self.extractions.pop(0))

    def _confirm(self, request, sid, row):
        body = json.loads(request.content)
        row = int(row)
        self.confirmed[row] = body["data"]
        session = self.sessions[sid]
        next_row = None
        if body["auto_advance"]:
            session["current_row"] = row + 1
            next_row = row + 1
        return httpx.Response(
            200,
            json={"success": True, "row_number": row, "status": "confirmed", "next_row": next_row},
        )

    def _skip(self, request, sid):
        session = self.sessions[sid]
        session["current_row"] += 1
        return httpx.Response(200, json={"success": True, "current_row": session["current_row"]})

    def _goto(self, request, sid, row):
        self.sessions[sid]["current_row"] = int(row)
        return httpx.Response(200, json={"success": True, "current_row": int(row)})

    def _list_rows(self, request, sid):
        excel = self.sessions[sid]["excel_file"] or {}
        rows = [
            {"row_number": n, "data": data, "status": "confirmed"}
            for n, data in sorted(self.confirmed.items())
        ]
        return httpx.Response(200, json={"headers": excel.get("headers", []), "rows": rows})

    def _update_row(self, request, sid, row):
        row = int(row)
        if row not in self.confirmed:
            return httpx.Response(404, json={"detail": "Row not found"})
        self.confirmed[row] = json.loads(request.content)["data"]
        return httpx.Response(200, json={"success": True, "final_data": self.confirmed[row]})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def api_client(backend):
    client = APIClient(base_url=BASE_URL, transport=httpx.MockTransport(backend))
    yield client
    await client.aclose()


@pytest.fixture
async def controller(api_client, fake_device):
    capture = AudioCaptureManager(fake_device, chunk_interval=0.005, level_interval=0.005)
    ctrl = SessionWorkflowController(api_client, capture=capture)
    yield ctrl
    await ctrl.aclose()
