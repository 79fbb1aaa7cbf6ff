"""Storage tier planning."""
