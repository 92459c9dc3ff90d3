"""Scheduling and progress engine for construction project line items."""

__version__ = "0.1.0"
