"""Terminal interface for practice sessions."""
