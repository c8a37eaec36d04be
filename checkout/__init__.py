"""Checkout core: payment intents, gateway reconciliation and order materialization."""
