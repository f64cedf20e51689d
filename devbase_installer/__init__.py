"""DevBase workstation installer (Python-first, phase-driven).

Core design goals:
- Strictly ordered phases (Preflight, Configuration, Installation, Finalize)
- Severity declared per step at phase construction (Fatal aborts, Soft warns)
- Verified artifact acquisition (cache, retry, SHA-256, fail-closed on mismatch)
- One temp workspace per run, removed exactly once on every exit path
- Centralized logging
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
