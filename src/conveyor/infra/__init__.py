"""Infrastructure helpers (subprocess execution)."""
