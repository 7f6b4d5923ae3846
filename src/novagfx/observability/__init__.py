"""
Logging, metrics and redaction helpers for interactive runs.
"""
