"""Typed records shared across the engine."""
