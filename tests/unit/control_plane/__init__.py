"""Unit tests for crossexam control plane."""
