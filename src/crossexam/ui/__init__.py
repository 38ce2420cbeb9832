"""
crossexam — user interface layer

File: src/crossexam/ui/__init__.py
Last updated: 2026-10-17

Purpose
- Command-line front end over the session orchestrator.

Functional requirements
- Must not import heavy modules at package import time.
"""

__all__: list[str] = []
