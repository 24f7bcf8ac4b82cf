"""Storage collaborator protocol and reference implementation."""

from __future__ import annotations

from proteocurtain.storage.store import InMemoryProteomicsStore, ProteomicsStore

__all__ = ["InMemoryProteomicsStore", "ProteomicsStore"]
