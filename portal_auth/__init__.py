"""Customer portal identity and session API."""
