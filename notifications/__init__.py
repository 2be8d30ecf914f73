"""Notification delivery: dispatcher and channel transports."""
