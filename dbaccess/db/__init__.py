"""Database access layer for dbaccess.

This sub-package holds the execution engine, the transaction coordinator and
one backend per supported vendor, so that callers stay vendor-agnostic.
"""
