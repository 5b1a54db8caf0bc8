"""HTTP API for Schema Porter."""
