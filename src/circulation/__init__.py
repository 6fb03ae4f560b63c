"""Library circulation core: borrow workflow, copy allocation, fines and memberships."""

__version__ = "0.1.0"
