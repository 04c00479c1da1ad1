"""Image upload and storage module.

Profile and group images are stored locally under the configured upload
directory and metadata is tracked in DuckDB. Only ``image/*`` uploads are
accepted.
"""
