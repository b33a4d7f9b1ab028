"""Applies precomputed role assignment plans to Azure RBAC."""

__version__ = "0.1.0"
