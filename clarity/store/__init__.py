"""Event log, derived snapshot and the store facade."""
