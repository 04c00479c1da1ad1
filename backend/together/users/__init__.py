"""User records, presence fields and contact connections."""
