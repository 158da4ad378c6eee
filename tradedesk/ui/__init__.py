"""Presentation helpers (rich text labels) for the derived views."""
