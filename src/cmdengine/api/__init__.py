"""REST API for the command engine."""
