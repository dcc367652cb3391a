"""Edit step: preview the extraction, then confirm, skip or re-record."""

import streamlit as st

from voicesheet.core.models import MultiRowExtraction
from voicesheet.services.editing import RowEditBuffer
from voicesheet.services.workflow import SessionWorkflowController
from voicesheet.ui.runtime import get_runner


def _confidence_label(confidence: float) -> str:
    if confidence >= 0.8:
        return "excellent"
    if confidence >= 0.5:
        return "good"
    return "poor"


def render_preview(controller: SessionWorkflowController) -> None:
    """Transcription, confidence and (for batches) review progress."""
    extraction = controller.extraction
    st.subheader("Transcription")
    pct = f"{extraction.confidence * 100:.0f}%"
    st.caption(f"Confidence: {pct} ({_confidence_label(extraction.confidence)})")
    st.code(extraction.transcription or "No text", language=None)

    batch = controller.batch
    if isinstance(extraction, MultiRowExtraction) and batch is not None:
        st.progress(
            batch.index / batch.length,
            text=f"Row {batch.position} of {batch.length} in this recording",
        )


def _render_field(buffer: RowEditBuffer, header: str, key: str) -> None:
    """One field: its value with an Edit button, or an open draft editor."""
    runner = get_runner()
    if buffer.editing_field != header:
        col_value, col_edit = st.columns([4, 1])
        col_value.text_input(header, value=buffer.get(header) or "", disabled=True)
        if col_edit.button("Edit", key=f"{key}-edit", use_container_width=True):
            runner.call(buffer.begin_edit, header)
            st.rerun()
        return

    draft = st.text_input(header, value=buffer.draft or "", key=f"{key}-draft")
    col_save, col_cancel = st.columns(2)
    if col_save.button("Save", key=f"{key}-save", type="primary", use_container_width=True):
        runner.call(buffer.update_draft, draft)
        runner.call(buffer.commit_edit)
        st.rerun()
    if col_cancel.button("Cancel", key=f"{key}-cancel", use_container_width=True):
        runner.call(buffer.cancel_edit)
        st.rerun()


def render_row_editor(controller: SessionWorkflowController) -> None:
    buffer = controller.edit_buffer
    runner = get_runner()
    headers = buffer.headers

    st.subheader(f"Edit row {controller.editing_row}")
    st.caption(f"{buffer.filled_count()} of {len(headers)} fields filled")

    # Each buffer gets its own widget keys so a fresh extraction is not overwritten
    prefix = f"field-{id(buffer)}"
    for header in headers:
        _render_field(buffer, header, f"{prefix}-{header}")

    busy = controller.is_busy
    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button(
            "Confirm and save",
            type="primary",
            disabled=busy or not buffer.can_confirm,
            use_container_width=True,
        ):
            if buffer.editing_field is not None:
                runner.call(buffer.commit_edit)
            runner.run(controller.confirm())
            st.rerun()
    with col2:
        if st.button("Re-record", disabled=busy, use_container_width=True):
            runner.call(controller.rerecord)
            st.rerun()
    with col3:
        if st.button("Skip", disabled=busy, use_container_width=True):
            runner.run(controller.skip())
            st.rerun()
