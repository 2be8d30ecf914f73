"""Background monitoring scheduler."""
