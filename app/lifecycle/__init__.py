"""Notification lifecycle — validated commands, state machine and service API."""
