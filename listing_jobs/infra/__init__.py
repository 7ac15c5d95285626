"""Timer, clock and HTTP infrastructure."""
