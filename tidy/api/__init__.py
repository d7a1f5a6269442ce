"""HTTP API for the Tidy editor."""
