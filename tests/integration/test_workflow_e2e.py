"""End-to-end workflow tests against a fake backend over HTTP.

Each test drives SessionWorkflowController through the real APIClient; only
the network (MockTransport) and the microphone (fake device) are faked.
"""

import asyncio

import pytest

from voicesheet.core.exceptions import SessionNotFoundError
from voicesheet.core.models import WorkflowStep
from voicesheet.services.audio.capture import AudioCaptureManager
from voicesheet.services.workflow import SessionWorkflowController


def _batch(*rows: tuple[int, str]) -> dict:
    return {
        "transcription": "several people",
        "confidence": 0.85,
        "rows": [
            {"row_number": n, "extracted_data": {"name": name, "phone": None}} for n, name in rows
        ],
    }


async def _record(controller) -> None:
    assert await controller.start_recording() is True
    await asyncio.sleep(0.1)
    assert await controller.stop_recording() is True


class TestUploadFlow:
    """A new session starts at upload and moves to record once a file is bound."""

    async def test_session_without_dataset_starts_at_upload(self, controller, backend):
        backend.add_session("s1")
        await controller.load_session("s1")
        assert controller.step is WorkflowStep.upload

    async def test_upload_moves_to_record(self, controller, backend):
        backend.add_session("s1")
        await controller.load_session("s1")

        assert await controller.upload_dataset("contacts.xlsx", b"PK\x03\x04data") is True

        assert controller.step is WorkflowStep.record
        assert controller.current_row == 1
        assert controller.dataset.headers == ["name", "phone"]
        assert controller.dataset.total_rows == 10

    async def test_new_session_then_upload(self, controller, backend):
        await controller.create_session()
        assert controller.session_id == "s1"
        assert controller.step is WorkflowStep.upload

    async def test_backend_rejects_upload(self, controller, backend):
        backend.add_session("s1")
        await controller.load_session("s1")
        assert await controller.upload_dataset("contacts.xlsx", b"garbage") is False
        assert controller.step is WorkflowStep.upload
        assert controller.status.error == "Invalid Excel file"


class TestSingleRowFlow:
    async def test_record_edit_confirm(self, controller, backend):
        backend.add_session("s1", headers=["name", "phone"])
        backend.extractions.append(
            {"transcription": "Ali", "confidence": 0.9, "extracted_data": {"name": "Ali"}}
        )
        await controller.load_session("s1")

        await _record(controller)
        assert controller.step is WorkflowStep.edit
        assert controller.edit_buffer.snapshot() == {"name": "Ali", "phone": None}

        assert await controller.confirm({"name": "Ali", "phone": "0591"}) is True

        assert backend.confirmed[1] == {"name": "Ali", "phone": "0591"}
        assert controller.current_row == 2
        assert controller.step is WorkflowStep.record

        # The server agrees on the row pointer after a reload
        await controller.load_session("s1")
        assert controller.current_row == 2

    async def test_extraction_failure_allows_retry(self, controller, backend):
        backend.add_session("s1", headers=["name", "phone"])
        await controller.load_session("s1")

        await controller.start_recording()
        assert await controller.stop_recording() is False
        assert controller.status.error == "No speech detected"
        assert controller.step is WorkflowStep.record

        backend.extractions.append({"extracted_data": {"name": "Sara"}})
        await _record(controller)
        assert controller.step is WorkflowStep.edit


class TestBatchFlow:
    async def test_three_row_batch(self, controller, backend):
        backend.add_session("s1", headers=["name", "phone"])
        backend.extractions.append(_batch((1, "A"), (2, "B"), (3, "C")))
        await controller.load_session("s1")
        await _record(controller)

        for _ in range(3):
            assert await controller.confirm() is True

        assert sorted(backend.confirmed) == [1, 2, 3]
        assert controller.step is WorkflowStep.record
        assert controller.current_row == 4
        assert controller.status.success == "3 rows saved"

    async def test_skip_abandons_batch(self, controller, backend):
        backend.add_session("s1", headers=["name", "phone"])
        backend.extractions.append(_batch((1, "A"), (2, "B")))
        await controller.load_session("s1")
        await _record(controller)

        assert await controller.skip() is True

        assert backend.confirm_calls() == []
        assert controller.step is WorkflowStep.record
        assert controller.current_row == 2
        assert controller.batch is None


class TestDeviceDenied:
    async def test_start_fails_cleanly(self, api_client, backend, denied_device):
        backend.add_session("s1", headers=["name", "phone"])
        capture = AudioCaptureManager(denied_device)
        controller = SessionWorkflowController(api_client, capture=capture)
        await controller.load_session("s1")

        assert await controller.start_recording() is False

        assert controller.step is WorkflowStep.record
        assert controller.status.error == "Permission denied"
        assert capture.holds_device is False
        assert capture.has_running_tasks is False
        assert not any(p.startswith("/audio/") for _, p in backend.calls)


class TestRowCorrection:
    async def test_correct_confirmed_cell(self, controller, backend):
        backend.add_session("s1", headers=["name", "phone"])
        backend.extractions.append({"extracted_data": {"name": "Ali", "phone": "059"}})
        await controller.load_session("s1")
        await _record(controller)
        await controller.confirm()

        sheet = await controller.list_rows()
        row = sheet.get(1)
        assert row.data == {"name": "Ali", "phone": "059"}

        assert await controller.update_row(1, row.with_cell("phone", "0591234567")) is True

        assert backend.confirmed[1] == {"name": "Ali", "phone": "0591234567"}
        assert controller.current_row == 2
        assert controller.step is WorkflowStep.record

    async def test_unsaved_row_rejected(self, controller, backend):
        backend.add_session("s1", headers=["name", "phone"])
        await controller.load_session("s1")

        assert await controller.update_row(3, {"name": "Sara"}) is False
        assert controller.status.error == "Row not found"


class TestDownload:
    async def test_download_after_confirm(self, controller, backend):
        backend.add_session("s1", headers=["name", "phone"])
        backend.extractions.append({"extracted_data": {"name": "Ali"}})
        await controller.load_session("s1")
        await _record(controller)
        await controller.confirm()

        data = await controller.download()

        assert data.startswith(b"PK\x03\x04")
        assert b"Ali" in data

    async def test_unknown_session(self, controller):
        with pytest.raises(SessionNotFoundError):
            await controller.load_session("missing")
        assert controller.status.error == "Session not found: missing"
