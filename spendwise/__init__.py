"""
Spendwise - Source Package

The core of a personal expense tracker: a reactive local store for
expenses and budgets, pure spending aggregations, and an LLM-backed
insight client.

DESIGN PRINCIPLES:
1. Storage is swappable (key-value backend behind an interface)
2. Aggregations are pure functions over snapshots
3. The LLM is optional - everything works offline
4. Persistence failures are loud, insight failures are quiet
"""

__version__ = "1.0.0"
__author__ = "Spendwise Team"
