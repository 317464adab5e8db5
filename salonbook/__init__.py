"""Availability and booking engine for appointment-based businesses."""

__version__ = "0.1.0"
