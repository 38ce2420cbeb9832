"""Unit tests for crossexam verification plane."""
