"""
Expense Tracker - Data Layer

Per-user paychecks, expenses and budgets kept in a hosted document store.

DESIGN PRINCIPLES:
1. Every document belongs to exactly one user; every read filters by owner
2. The store stamps owners and timestamps, never the caller
3. Fail fast, fail visibly: one attempt, errors surfaced to the caller
4. The storage backend is swappable
"""

__version__ = "1.0.0"
