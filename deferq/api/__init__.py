"""API Layer - FastAPI hook point that executes deferred values per request.

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - All error responses share the DeferqError envelope
"""
