"""Search and application services."""
