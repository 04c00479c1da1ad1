"""Per-user todo lists with items."""
