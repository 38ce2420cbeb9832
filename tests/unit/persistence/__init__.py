"""Unit tests for crossexam persistence."""
