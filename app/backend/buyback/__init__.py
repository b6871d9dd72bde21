"""
Buyback distributor backend.

Runs a scheduled cycle that:
- claims accumulated creator fees (or falls back to the operator wallet)
- buys back the target token and wraps the remainder into WSOL
- ranks the top token holders and pays them proportionally
- records every step for the public dashboard API
"""

__version__ = "0.1.0"
