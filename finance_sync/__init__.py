"""
Finance Sync - Source Package

Client-side resilient loading of the seven personal-finance
collections (transactions, shifts, goals, debts, budgets, bills,
investments) for the dashboard.

DESIGN PRINCIPLES:
1. A failed collection never blocks the others
2. Stale or superseded responses never overwrite fresher data
3. Last good data stays visible, offline included
4. Every fetch step is logged
"""

__version__ = "1.0.0"
__author__ = "Finance Sync Team"
