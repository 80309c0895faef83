"""Incremental record harvesting from dynamically rendered, paginated pages."""
