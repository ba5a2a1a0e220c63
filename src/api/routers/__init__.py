"""
API Routers package.
"""

from . import batches, ledger, publications

__all__ = ["batches", "ledger", "publications"]
