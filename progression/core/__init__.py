"""Infrastructure layer: configuration, logging, events, database, validation."""
