"""Sentinel Auth: multi-tenant authentication, session and RBAC service."""

__version__ = "1.0.0"
