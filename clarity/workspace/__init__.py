"""Named workspaces, export and import."""
