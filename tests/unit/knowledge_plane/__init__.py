"""Unit tests for crossexam knowledge plane."""
