"""3PL operations dashboard backend."""
