"""Unit tests for crossexam ui."""
