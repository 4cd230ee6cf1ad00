"""deferq - deferred, transaction-propagating query composition over async SQLAlchemy.

Invariants:
    - Package root contains no executable code (import side-effects prohibited)

Design Decisions:
    - Empty __init__.py: explicit imports from deferq.core.* (ADR: no star exports)
"""
