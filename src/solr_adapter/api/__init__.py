"""HTTP API for search and engine health."""
