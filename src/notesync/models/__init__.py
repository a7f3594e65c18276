"""Data models for the notesync client."""
