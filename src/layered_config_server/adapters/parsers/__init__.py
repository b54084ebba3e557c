"""Document parsers keyed by file suffix."""
