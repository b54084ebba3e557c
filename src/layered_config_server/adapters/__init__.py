"""Adapters binding the application ports to storage media and formats."""
