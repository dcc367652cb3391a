"""Sheet table: every stored row, with single-cell corrections."""

import streamlit as st

from voicesheet.services.workflow import SessionWorkflowController
from voicesheet.ui.runtime import get_runner


def render_table_view(controller: SessionWorkflowController) -> None:
    """Stored rows as a table plus a form that rewrites one cell."""
    runner = get_runner()
    sheet = runner.run(controller.list_rows())
    if sheet is None:
        return
    if not sheet.rows:
        st.caption("No rows have been saved yet.")
        return

    st.dataframe(
        [
            {
                "row": r.row_number,
                **{h: r.data.get(h) or "" for h in sheet.headers},
                "status": r.status,
            }
            for r in sheet.rows
        ],
        hide_index=True,
        use_container_width=True,
    )

    with st.form("cell-correction", clear_on_submit=True):
        col_row, col_column = st.columns(2)
        row_number = col_row.selectbox("Row", [r.row_number for r in sheet.rows])
        column = col_column.selectbox("Column", sheet.headers)
        value = st.text_input("Corrected value", help="Leave blank to clear the cell")
        if st.form_submit_button("Save cell", disabled=controller.is_busy):
            row = sheet.get(row_number)
            if runner.run(controller.update_row(row_number, row.with_cell(column, value))):
                st.rerun()
