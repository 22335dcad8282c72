"""Domain models and entities.

Why:
- Pure, strict data structures (Pydantic v2) live here.
- The domain knows nothing about subprocesses, SSH or the CLI: only the problem's concepts.
"""
