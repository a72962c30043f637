"""Command-domain rules over the aggregate."""
