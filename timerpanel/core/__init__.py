"""Timer registry and duration formatting."""
