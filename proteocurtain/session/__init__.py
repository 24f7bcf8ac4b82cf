"""Search-list session and selection-map round-trip."""

from __future__ import annotations

from proteocurtain.session.search_lists import SelectionSession

__all__ = ["SelectionSession"]
