"""Utility helpers for the invoicing kernel."""
