"""Control API for the bisyncd daemon."""
