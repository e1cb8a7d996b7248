"""Internal helpers for libchild, not covered by versioning policy."""
