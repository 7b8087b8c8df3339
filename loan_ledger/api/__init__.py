"""HTTP adapter for the ledger."""

from .router import build_ledger_router

__all__ = ["build_ledger_router"]
