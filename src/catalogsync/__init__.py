"""Catalog reconciliation engine for external commerce platforms."""
