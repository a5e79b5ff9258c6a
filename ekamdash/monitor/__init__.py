"""Monitor: read-only projections of the status tree for terminal display."""
