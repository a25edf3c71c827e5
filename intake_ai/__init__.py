"""Intake AI - document intelligence extraction for healthcare intake."""

__version__ = "0.1.0"
