"""Per-user daily schedule slots."""
