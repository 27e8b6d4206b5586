"""CSV ingestion: row extraction and import orchestration."""
