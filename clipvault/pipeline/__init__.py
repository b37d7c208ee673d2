"""Clip ingestion pipeline: acquire, trim, slice, upload, persist."""
