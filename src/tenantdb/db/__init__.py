"""Control-plane persistence for tenant aggregates."""
