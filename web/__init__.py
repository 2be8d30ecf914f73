"""Flask JSON API."""
