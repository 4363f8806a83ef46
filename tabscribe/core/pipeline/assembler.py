"""Reorder segment results by sequence number."""

from __future__ import annotations

from typing import Dict, List, Optional

from ...data.models import TranscriptionResult
from ...logging import get_logger

LOGGER = get_logger(__name__)


class TranscriptAssembler:
    """Buffer results that arrive out of order and release them contiguously.

    Failed segments must be :meth:`skip`-ped, otherwise every later result
    waits for them forever.
    """

    def __init__(self, start_sequence: int = 0, separator: str = " ") -> None:
        self.separator = separator
        self._next = start_sequence
        self._pending: Dict[int, Optional[TranscriptionResult]] = {}
        self._released: List[TranscriptionResult] = []

    @property
    def waiting_for(self) -> Optional[int]:
        """Sequence number blocking release, or ``None`` when nothing is held back."""

        return self._next if self._pending else None

    @property
    def results(self) -> List[TranscriptionResult]:
        return list(self._released)

    @property
    def text(self) -> str:
        parts = (result.text.strip() for result in self._released)
        return self.separator.join(part for part in parts if part)

    def add(self, result: TranscriptionResult) -> List[TranscriptionResult]:
        """Store ``result`` and return the results that became contiguous."""

        sequence = result.sequence_number
        if sequence is None:
            self._released.append(result)
            return [result]
        if sequence < self._next or sequence in self._pending:
            LOGGER.debug("Ignoring duplicate result for sequence %s", sequence)
            return []
        self._pending[sequence] = result
        return self._drain()

    def skip(self, sequence: Optional[int]) -> List[TranscriptionResult]:
        """Mark ``sequence`` as failed so later results are not held back."""

        if sequence is None or sequence < self._next or sequence in self._pending:
            return []
        self._pending[sequence] = None
        return self._drain()

    def _drain(self) -> List[TranscriptionResult]:
        ready: List[TranscriptionResult] = []
        while self._next in self._pending:
            item = self._pending.pop(self._next)
            self._next += 1
            if item is not None:
                ready.append(item)
        self._released.extend(ready)
        return ready


__all__ = ["TranscriptAssembler"]
