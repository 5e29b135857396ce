"""Timer records and errors."""
