"""Per-user calendar events."""
