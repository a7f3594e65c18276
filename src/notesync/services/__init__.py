"""Service layer for the notesync client."""
