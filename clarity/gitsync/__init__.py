"""Git-backed sync of canonical workspace paths."""
