"""Integration tests: the CLI run as a subprocess against a real state DB."""
