"""Traversal engines: live browser and mirrored files."""
