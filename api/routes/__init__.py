"""
API Routes for CarBot lead scoring.
"""

from . import leads

__all__ = ["leads"]
