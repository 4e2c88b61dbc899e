"""Check-in engine services."""
