"""Skinfluence routine service: product catalog and rule-based routine engine."""

__version__ = "0.1.0"
