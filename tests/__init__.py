"""Test suite for crossexam."""
