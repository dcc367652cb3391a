"""
VoiceSheet Streamlit UI, main entry point.

Run with: ``streamlit run voicesheet/ui/app.py``
"""

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so ``from voicesheet.xxx`` imports work.
# Streamlit replaces sys.path[0] with the script directory (voicesheet/ui/).
# ---------------------------------------------------------------------------
import sys  # noqa: E402
from pathlib import Path  # noqa: E402

_project_root = str(Path(__file__).resolve().parent.parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

import logging  # noqa: E402

import streamlit as st  # noqa: E402

from voicesheet.core.config import get_settings  # noqa: E402
from voicesheet.core.exceptions import VoiceSheetError  # noqa: E402
from voicesheet.core.models import WorkflowStep  # noqa: E402
from voicesheet.ui.components.recorder import render_recorder  # noqa: E402
from voicesheet.ui.components.row_editor import render_preview, render_row_editor  # noqa: E402
from voicesheet.ui.components.table_view import render_table_view  # noqa: E402
from voicesheet.ui.components.uploader import render_uploader  # noqa: E402
from voicesheet.ui.runtime import get_controller, get_runner  # noqa: E402

_settings = get_settings()
logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

st.set_page_config(page_title="VoiceSheet", page_icon="\U0001f399\ufe0f", layout="wide")

# ---------------------------------------------------------------------------
# Session state defaults
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "api_base_url": _settings.api_base_url,
    "session_id": "",
}

for key, value in _DEFAULTS.items():
    if key not in st.session_state:
        st.session_state[key] = value

runner = get_runner()

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
with st.sidebar:
    st.title("\U0001f399\ufe0f VoiceSheet")
    st.caption("Fill spreadsheet rows by voice")
    st.divider()
    st.session_state.api_base_url = st.text_input(
        "Backend API URL",
        value=st.session_state.api_base_url,
        help="Versioned API root of the extraction backend",
    )
    controller = get_controller(st.session_state.api_base_url)

    # Connection status indicator
    _conn_ok, _conn_msg = runner.run(controller.check_connection())
    if _conn_ok:
        st.success(f"Backend: {_conn_msg}")
    else:
        st.error(f"Backend: {_conn_msg}")

    session_input = st.text_input("Session ID", value=st.session_state.session_id)
    col_open, col_new = st.columns(2)
    with col_open:
        if st.button("Open", use_container_width=True, disabled=not session_input):
            try:
                runner.run(controller.load_session(session_input.strip()))
                st.session_state.session_id = controller.session_id
            except VoiceSheetError:
                pass  # Banner already set by the controller
    with col_new:
        if st.button("New session", use_container_width=True):
            try:
                runner.run(controller.create_session())
                st.session_state.session_id = controller.session_id
                st.rerun()
            except VoiceSheetError:
                pass

    if controller.session is not None:
        st.divider()
        st.subheader("Session")
        st.caption(
            f"ID `{controller.session_id}` \u00b7 language "
            f"`{controller.session.settings.language}`"
        )
        stats = runner.run(controller.refresh_stats())
        if stats is not None:
            col_done, col_draft = st.columns(2)
            col_done.metric("Confirmed", stats.rows_confirmed)
            col_draft.metric("Drafts", stats.rows_draft)
            if stats.unresolved_errors:
                st.warning(f"{stats.unresolved_errors} unresolved extraction errors")

# ---------------------------------------------------------------------------
# Banners
# ---------------------------------------------------------------------------
if controller.status.error:
    st.error(controller.status.error)
if controller.status.success:
    st.success(controller.status.success)

if controller.session is None:
    st.info("Open an existing session or create a new one from the sidebar.")
    st.stop()

# ---------------------------------------------------------------------------
# Header: progress and download
# ---------------------------------------------------------------------------
dataset = controller.dataset
if dataset is not None:
    col_progress, col_download = st.columns([4, 1])
    with col_progress:
        total = max(dataset.total_rows, 1)
        st.progress(
            min((dataset.current_row - 1) / total, 1.0),
            text=f"Row {dataset.current_row} of {dataset.total_rows} ({dataset.name})",
        )
    with col_download:
        if st.button("Prepare download", use_container_width=True):
            st.session_state._download = runner.run(controller.download())
        artifact = st.session_state.get("_download")
        if artifact:
            st.download_button(
                "Download file",
                data=artifact,
                file_name=dataset.name,
                use_container_width=True,
            )

# ---------------------------------------------------------------------------
# Workflow step
# ---------------------------------------------------------------------------
step = controller.step
if step is WorkflowStep.record and dataset is not None and dataset.total_rows:
    with st.expander("Jump to row"):
        target = st.number_input(
            "Row number",
            min_value=1,
            max_value=dataset.total_rows,
            value=min(dataset.current_row, dataset.total_rows),
        )
        if st.button("Go", disabled=controller.is_busy):
            if runner.run(controller.go_to_row(int(target))):
                st.rerun()

if step is WorkflowStep.upload:
    render_uploader(controller)
else:
    left, right = st.columns(2)
    with left:
        render_recorder(controller)
    with right:
        if step is WorkflowStep.edit:
            render_preview(controller)
            render_row_editor(controller)
        else:
            st.info("Press record and speak the row's values.")

    if step is WorkflowStep.record and st.toggle("Show saved rows"):
        st.divider()
        st.subheader("Saved rows")
        render_table_view(controller)
