"""Operator-side editing of one extracted row before it is confirmed."""

import logging

from voicesheet.core.models import RowData

logger = logging.getLogger(__name__)


class RowEditBuffer:
    """Mutable copy of one row's field values.

    Columns follow ``headers`` order. ``None`` means the field was never set
    (or not recognized by the extractor); an empty string is kept exactly as
    typed but counts as unfilled.

    Args:
        headers: Ordered column names of the bound dataset.
        row: Initial values, usually an extraction's ``extracted_data``.
    """

    def __init__(self, headers: list[str], row: RowData | None = None) -> None:
        self._headers = list(headers)
        self._values: RowData = {}
        self._editing: str | None = None
        self._draft: str | None = None
        self.reseed(row or {})

    @property
    def headers(self) -> list[str]:
        return list(self._headers)

    @property
    def editing_field(self) -> str | None:
        """Column currently open for editing, if any."""
        return self._editing

    @property
    def draft(self) -> str | None:
        return self._draft

    def reseed(self, row: RowData) -> None:
        """Replace every value with a fresh copy of ``row``.

        Keys outside ``headers`` are dropped; missing headers become None.
        Any open field edit is cancelled.
        """
        extra = set(row) - set(self._headers)
        if extra:
            logger.debug("Ignoring extracted fields outside headers: %s", sorted(extra))
        self._values = {h: row.get(h) for h in self._headers}
        self._editing = None
        self._draft = None

    def get(self, column: str) -> str | None:
        return self._values[column]

    def set_field(self, column: str, value: str | None) -> None:
        """Store ``value`` for ``column`` as typed.

        Raises:
            KeyError: If ``column`` is not one of the headers.
        """
        if column not in self._values:
            raise KeyError(column)
        self._values[column] = value

    # -- field-level edit toggle --

    def begin_edit(self, column: str) -> None:
        """Open ``column`` for editing; replaces any other open draft."""
        if column not in self._values:
            raise KeyError(column)
        self._editing = column
        self._draft = self._values[column] or ""

    def update_draft(self, value: str) -> None:
        if self._editing is None:
            raise RuntimeError("No field is being edited")
        self._draft = value

    def commit_edit(self) -> None:
        """Write the open draft back to its field and close the editor."""
        if self._editing is None:
            return
        self.set_field(self._editing, self._draft)
        self._editing = None
        self._draft = None

    def cancel_edit(self) -> None:
        self._editing = None
        self._draft = None

    # -- confirm gate --

    def filled_count(self) -> int:
        """Number of fields holding a non-empty value."""
        return sum(1 for v in self._values.values() if v is not None and v != "")

    @property
    def can_confirm(self) -> bool:
        return self.filled_count() > 0

    def snapshot(self) -> RowData:
        """Independent copy of the current values, in header order."""
        return dict(self._values)
