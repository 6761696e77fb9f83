"""Infrastructure layer: configuration, database, ORM models, security and email."""
