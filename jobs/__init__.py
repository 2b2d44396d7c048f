"""
Background jobs for CarBot lead scoring.
"""
