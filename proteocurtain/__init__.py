"""Proteomics identifier mapping, search and volcano plot engine."""

__version__ = "0.1.0"
