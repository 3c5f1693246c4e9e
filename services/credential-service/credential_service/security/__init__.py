"""Password hashing and login throttling."""
