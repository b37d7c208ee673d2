"""ClipVault: frame-range clip ingestion with object storage and vector search metadata."""

__version__ = "1.0.0"
