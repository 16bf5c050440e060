"""Process initialization helpers."""
