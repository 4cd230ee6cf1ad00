"""Core Layer - the deferred query tree, its container and its error types.

Invariants:
    - No module in core/ imports from api/ or infrastructure/
    - Storage access only through the DatabaseHandle protocol

Design Decisions:
    - Functional core separated from imperative shell (ADR: impureim sandwich)
"""
