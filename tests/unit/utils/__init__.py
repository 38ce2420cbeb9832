"""Unit tests for crossexam filesystem helpers."""
