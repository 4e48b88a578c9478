"""Due-time scheduling of notifications."""
