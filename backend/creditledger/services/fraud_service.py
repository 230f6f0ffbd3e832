# Overview: Pluggable fraud predicate used by the POS route to flag suspicious sales.

"""
The predicate is a plain callable ``(sale: dict) -> bool`` stored on the app
(``app.extensions["creditledger.fraud_predicate"]``), so deployments and
tests can swap it without touching the posting code.

The sale dict carries the same keys the POS payload does:
total_amount_cents, discount_cents, lines, type, payment_method.
"""

from __future__ import annotations

from typing import Callable

from flask import Flask, current_app


EXTENSION_KEY = "creditledger.fraud_predicate"

FraudPredicate = Callable[[dict], bool]


def make_high_discount_predicate(threshold_pct: float) -> FraudPredicate:
    """Flag a sale when its discount exceeds threshold_pct of the gross (total + discount)."""
    def predicate(sale: dict) -> bool:
        discount = int(sale.get("discount_cents") or 0)
        if discount <= 0:
            return False
        gross = int(sale.get("total_amount_cents") or 0) + discount
        return discount * 100 > threshold_pct * gross

    return predicate


def high_discount_predicate(sale: dict) -> bool:
    """Default predicate, reading FRAUD_DISCOUNT_THRESHOLD_PCT from the current app."""
    threshold = float(current_app.config.get("FRAUD_DISCOUNT_THRESHOLD_PCT", 20))
    return make_high_discount_predicate(threshold)(sale)


def install_predicate(app: Flask, predicate: FraudPredicate | None = None) -> None:
    app.extensions[EXTENSION_KEY] = predicate or high_discount_predicate


def get_predicate() -> FraudPredicate:
    return current_app.extensions.get(EXTENSION_KEY, high_discount_predicate)


def is_suspicious(sale: dict) -> bool:
    return bool(get_predicate()(sale))
