"""Shared helpers: key conversion, audit trail, password hashing."""
