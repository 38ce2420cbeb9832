"""End-to-end smoke tests for crossexam."""
