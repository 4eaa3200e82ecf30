"""Cross-cutting runtime concerns: logging, telemetry and error translation."""
