"""
crossexam — adversarial review session engine

File: src/crossexam/__init__.py
Last updated: 2026-10-17

Purpose
- Package root. A Verifier and a Critic take turns over a shared, growing
  body of evidence until the review converges or the round budget runs out.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
