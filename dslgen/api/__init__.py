"""HTTP API for dslgen."""
