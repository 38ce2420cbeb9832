"""Unit tests for crossexam observability."""
