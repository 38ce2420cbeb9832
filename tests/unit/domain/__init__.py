"""Unit tests for crossexam domain."""
