"""
Smart Split - Source Package

Shared expense tracking for friends, flatmates and groups.

DESIGN PRINCIPLES:
1. Balances are derived, never stored
2. Fail early at the write boundary, fail soft on historical reads
3. Every write is auditable
4. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Smart Split Team"
