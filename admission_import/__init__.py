"""Bulk admission import: template, parse, validate, reconcile documents, commit."""

__version__ = "0.3.0"
