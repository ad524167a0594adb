"""Python client for the pharmacy stock API and its add-drug form logic."""
from .session import ClientSession
from .api import PharmStockClient, ApiError, AuthError, ConflictError, ValidationError

__all__ = [
    'ClientSession',
    'PharmStockClient',
    'ApiError', 'AuthError', 'ConflictError', 'ValidationError',
]
