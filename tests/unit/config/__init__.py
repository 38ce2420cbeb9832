"""Unit tests for crossexam config."""
