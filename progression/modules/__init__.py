"""Domain modules of the progression engine."""
