"""Source backends: local filesystem and git repository."""
