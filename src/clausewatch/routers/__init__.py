from clausewatch.routers import api

__all__ = ["api"]
