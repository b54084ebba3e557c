"""Environment variable ingestion for server settings."""
