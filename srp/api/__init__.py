"""HTTP ingest service."""
