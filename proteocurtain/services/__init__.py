"""Service layer: annotation lookups and dataset orchestration."""
