from .tenancy import Organization
from .auth import User, SessionToken
from .drugs import (
    Drug,
    Stock,
    StockTransaction,
    DEPARTMENTS,
    DOSAGE_FORMS,
    DRUG_CATEGORIES,
    TRANSACTION_TYPES,
    complementary_department,
)

__all__ = [
    'Organization',
    'User', 'SessionToken',
    'Drug', 'Stock', 'StockTransaction',
    'DEPARTMENTS', 'DOSAGE_FORMS', 'DRUG_CATEGORIES', 'TRANSACTION_TYPES',
    'complementary_department',
]
