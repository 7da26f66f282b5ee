"""In-memory cache of analysis results keyed by an external identifier."""
from __future__ import annotations

from collections import OrderedDict
from typing import Optional

from commentlens.models.analysis import AnalysisResult


class ResultCache:
    """Bounded least-recently-used mapping; the last write for a key wins."""

    def __init__(self, max_entries: int = 128) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._entries: "OrderedDict[str, AnalysisResult]" = OrderedDict()

    def get(self, key: str) -> Optional[AnalysisResult]:
        result = self._entries.get(key)
        if result is not None:
            self._entries.move_to_end(key)
        return result

    def set(self, key: str, result: AnalysisResult) -> None:
        self._entries[key] = result
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
