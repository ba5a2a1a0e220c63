"""
Publication resolution engine.

Duplicate detection and publication assembly for the daily threat report.
"""

__version__ = "1.0.0"
