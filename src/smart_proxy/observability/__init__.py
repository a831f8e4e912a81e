"""
Observability utilities.

This package provides:
- redaction: secret and authorization code masking for safe logging
"""
