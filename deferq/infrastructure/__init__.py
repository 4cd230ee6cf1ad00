"""Infrastructure Layer - SQLAlchemy handles, error translation, logging setup.

Invariants:
    - Raw SQLAlchemy errors never leave this layer untranslated
"""
