# Overview: Balance reducers for buyer receivables and supplier payables.

"""
Two reducers, deliberately not sharing a clamp:

- Buyer credit: increments are unclamped; every decrement is floored at 0.
  A single payment or reversal never leaves a buyer owing negative money;
  any excess is absorbed.
- Supplier balance: fully signed. Paying a supplier more than is owed is a
  valid state (the supplier now owes the business).
"""

from __future__ import annotations


def buyer_credit_after(current_cents: int, delta_cents: int) -> int:
    """Apply a signed delta to a buyer's outstanding credit."""
    if delta_cents >= 0:
        return current_cents + delta_cents
    return max(0, current_cents + delta_cents)


def supplier_balance_after(current_cents: int, delta_cents: int) -> int:
    """Apply a signed delta to a supplier balance; negative results are kept."""
    return current_cents + delta_cents


def stock_after_sale(on_hand: int, quantity: int) -> int:
    """Sales never drive a branch pool below zero; oversells are absorbed."""
    return max(0, on_hand - quantity)
