"""Play history loading and aggregation."""
