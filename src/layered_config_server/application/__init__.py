"""Application policies: document resolution, merging, and caching."""
