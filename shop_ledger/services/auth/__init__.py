"""Authentication services package."""

from shop_ledger.services.auth.interface import (
    AccountExistsError,
    AuthError,
    AuthProviderInterface,
    InvalidCredentialsError,
)
from shop_ledger.services.auth.local_provider import LocalAuthProvider

__all__ = [
    "AccountExistsError",
    "AuthError",
    "AuthProviderInterface",
    "InvalidCredentialsError",
    "LocalAuthProvider",
]
