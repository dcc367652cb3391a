"""Upload step: bind a spreadsheet to the session."""

import streamlit as st

from voicesheet.services.workflow import SessionWorkflowController
from voicesheet.ui.runtime import get_runner


def render_uploader(controller: SessionWorkflowController) -> None:
    st.subheader("Upload spreadsheet")
    st.caption("The first row must hold the column headers.")

    uploaded = st.file_uploader("Excel file", type=["xlsx", "xls"])
    if uploaded is None:
        return

    if st.button("Upload", type="primary", disabled=controller.is_busy):
        with st.spinner("Uploading..."):
            ok = get_runner().run(controller.upload_dataset(uploaded.name, uploaded.getvalue()))
        if ok:
            st.rerun()
