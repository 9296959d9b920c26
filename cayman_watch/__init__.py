"""Gazette, registry and news extraction pipeline for Cayman insolvency monitoring."""

__version__ = "0.1.0"
