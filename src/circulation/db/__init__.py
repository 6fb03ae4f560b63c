# src/circulation/db/__init__.py
# Don't import session on package import (it builds settings-bound engines); expose lazily instead
from .base import Base  # safe to import


def transaction(session):
    from .session import transaction as _tx
    return _tx(session)
