"""HTTP API exposing research sessions and stage execution."""
