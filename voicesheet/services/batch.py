"""Sequential review of the rows extracted from one recording."""

from enum import StrEnum

from voicesheet.core.models import BatchRow


class BatchAdvance(StrEnum):
    """Outcome of disposing of the current batch row."""

    has_more = "has_more"
    exhausted = "exhausted"


class MultiRowBatchSequencer:
    """Walks a batch of extracted rows one at a time.

    Every row is either confirmed in order or the whole remainder is dropped
    with ``restart()``; rows are never skipped silently.

    Args:
        rows: Ordered candidate rows; at least two.

    Raises:
        ValueError: If fewer than two rows are given.
    """

    def __init__(self, rows: list[BatchRow]) -> None:
        if len(rows) < 2:
            raise ValueError(f"A batch needs at least 2 rows, got {len(rows)}")
        self._rows = list(rows)
        self._index = 0
        self._confirmed = [False] * len(self._rows)
        self._done = False

    @property
    def index(self) -> int:
        return self._index

    @property
    def position(self) -> int:
        """1-based position of the current row, for display."""
        return self._index + 1

    @property
    def length(self) -> int:
        return len(self._rows)

    @property
    def remaining(self) -> int:
        """Rows not yet confirmed, including the current one."""
        return 0 if self._done else self.length - self._index

    @property
    def is_last(self) -> bool:
        return self._index == self.length - 1

    @property
    def is_done(self) -> bool:
        return self._done

    @property
    def confirmed_count(self) -> int:
        return sum(self._confirmed)

    def current(self) -> BatchRow:
        if self._done:
            raise RuntimeError("Batch is finished")
        return self._rows[self._index]

    def confirm_current(self) -> BatchAdvance:
        """Mark the current row disposed of and move to the next one.

        Returns:
            ``has_more`` after advancing, or ``exhausted`` when the last row
            was just confirmed.

        Raises:
            RuntimeError: If the batch is already finished.
        """
        if self._done:
            raise RuntimeError("Batch is finished")
        self._confirmed[self._index] = True
        if self._index < self.length - 1:
            self._index += 1
            return BatchAdvance.has_more
        self._done = True
        return BatchAdvance.exhausted

    def restart(self) -> int:
        """Abandon every unconfirmed row. Returns how many were dropped."""
        dropped = self.remaining
        self._done = True
        return dropped
