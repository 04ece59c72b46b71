"""Per-user daily learning-activity metrics engine."""
