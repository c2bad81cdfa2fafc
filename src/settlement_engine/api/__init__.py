"""REST API for the settlement engine."""
