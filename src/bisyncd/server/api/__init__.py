"""Control API routes."""
