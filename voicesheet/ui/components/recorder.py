"""
Recorder component: microphone capture for the current row.

Two sources feed the same workflow: the local microphone through the
capture manager, and clips recorded in the browser with ``st.audio_input``.
"""

import streamlit as st

from voicesheet.core.models import WorkflowStep
from voicesheet.services.audio.processor import AudioProcessor
from voicesheet.services.workflow import SessionWorkflowController
from voicesheet.ui.runtime import get_runner


def _format_time(seconds: int) -> str:
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


@st.fragment(run_every=0.5)
def _render_live_meter(controller: SessionWorkflowController) -> None:
    capture = controller.capture
    if capture is None or not capture.is_capturing:
        return
    st.markdown(f"**Recording** {_format_time(capture.elapsed_seconds)}")
    st.progress(min(1.0, capture.level))


def render_recorder(controller: SessionWorkflowController) -> None:
    """Render the recording controls; disabled while a row is under review."""
    dataset = controller.dataset
    runner = get_runner()
    reviewing = controller.step is WorkflowStep.edit

    st.subheader(f"Record row {dataset.current_row}")
    st.caption("Say each column name followed by its value.")
    st.write(" · ".join(f"`{h}`" for h in dataset.headers))

    capture = controller.capture
    if capture is not None and capture.is_capturing:
        _render_live_meter(controller)
        if st.button("Stop", type="primary"):
            with st.spinner("Processing audio..."):
                runner.run(controller.stop_recording())
            st.rerun()
        return

    if capture is not None:
        if st.button("Start recording", type="primary", disabled=reviewing or controller.is_busy):
            runner.run(controller.start_recording())
            st.rerun()

    clip = st.audio_input("Or record in the browser", disabled=reviewing)
    if clip is not None and not reviewing:
        clip_id = hash(clip.getvalue())
        if st.session_state.get("_last_clip") == clip_id:
            return
        st.session_state._last_clip = clip_id
        try:
            payload = AudioProcessor().clip_to_payload(clip.getvalue())
        except ValueError as exc:
            runner.call(controller.status.show_error, str(exc))
            st.rerun()
            return
        with st.spinner("Processing audio..."):
            runner.run(controller.process_audio(payload))
        st.rerun()
