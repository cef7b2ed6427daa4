"""
Local Auth Provider

Accounts live in a snapshot blob on this device, so the app runs with
no hosted auth service. Passwords are stored as salted PBKDF2 hashes.

The logged-in identity is remembered in a second blob (with an expiry).
That blob belongs to one device: a provider built with a device_id
remembers logins under its own key, so a login on one browser is
never resumed by another.
"""

import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import uuid4

from shop_ledger.config import get_settings
from shop_ledger.logger import get_logger
from shop_ledger.models.transaction import UserIdentity
from shop_ledger.services.auth.interface import (
    AccountExistsError,
    AuthError,
    AuthProviderInterface,
    InvalidCredentialsError,
)
from shop_ledger.services.storage.snapshot_file import SnapshotFile


logger = get_logger(__name__)

PBKDF2_ITERATIONS = 200_000
MIN_PASSWORD_LENGTH = 6
DEVICE_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


def _hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt),
        PBKDF2_ITERATIONS,
    )
    return digest.hex()


class LocalAuthProvider(AuthProviderInterface):
    """Device-local accounts and remembered session."""

    def __init__(
        self,
        snapshot: Optional[SnapshotFile] = None,
        session_ttl: Optional[timedelta] = None,
        device_id: Optional[str] = None,
    ):
        super().__init__()
        settings = get_settings().local_snapshot
        self._snapshot = snapshot or SnapshotFile(settings.data_path)
        self._accounts_key = settings.accounts_key
        self._session_key = settings.session_key
        if device_id is not None:
            if not DEVICE_ID_PATTERN.fullmatch(device_id):
                raise ValueError(f"Invalid device id: {device_id!r}")
            self._session_key = f"{settings.session_key}_{device_id}"
        self._session_ttl = session_ttl or timedelta(hours=settings.session_ttl_hours)

    def _accounts(self) -> dict[str, Any]:
        accounts = self._snapshot.read(self._accounts_key, default={})
        return accounts if isinstance(accounts, dict) else {}

    def _remember(self, identity: UserIdentity) -> None:
        expires_at = datetime.now(timezone.utc) + self._session_ttl
        self._snapshot.write(
            self._session_key,
            {**identity.model_dump(), "expires_at": expires_at.isoformat()},
        )

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        key = email.strip().lower()
        account = self._accounts().get(key)
        if account is None:
            raise InvalidCredentialsError("Email or password is incorrect.")

        expected = account.get("password_hash", "")
        actual = _hash_password(password, account.get("salt", ""))
        if not hmac.compare_digest(expected, actual):
            logger.warning("sign_in_rejected", email=key)
            raise InvalidCredentialsError("Email or password is incorrect.")

        identity = UserIdentity(
            id=account["id"],
            name=account.get("name", ""),
            email=account["email"],
        )
        self._remember(identity)
        logger.info("signed_in", user_id=identity.id)
        self._notify(identity)
        return identity

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str,
    ) -> UserIdentity:
        key = email.strip().lower()
        if "@" not in key:
            raise AuthError("Please enter a valid email address.")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise AuthError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
            )

        with self._snapshot.lock:
            accounts = self._accounts()
            if key in accounts:
                raise AccountExistsError("An account with this email already exists.")

            salt = secrets.token_hex(16)
            identity = UserIdentity(
                id=str(uuid4()),
                name=display_name.strip() or key.split("@")[0],
                email=key,
            )
            accounts[key] = {
                **identity.model_dump(),
                "salt": salt,
                "password_hash": _hash_password(password, salt),
            }
            self._snapshot.write(self._accounts_key, accounts)

        self._remember(identity)
        logger.info("signed_up", user_id=identity.id)
        self._notify(identity)
        return identity

    async def sign_out(self) -> None:
        self._snapshot.remove(self._session_key)
        logger.info("signed_out")
        self._notify(None)

    async def get_current_session(self) -> Optional[UserIdentity]:
        saved = self._snapshot.read(self._session_key)
        if not isinstance(saved, dict):
            return None

        try:
            expires_at = datetime.fromisoformat(saved["expires_at"])
            identity = UserIdentity(
                id=saved["id"],
                name=saved.get("name", ""),
                email=saved["email"],
            )
        except (KeyError, TypeError, ValueError):
            self._snapshot.remove(self._session_key)
            return None

        if expires_at <= datetime.now(timezone.utc):
            self._snapshot.remove(self._session_key)
            logger.info("session_expired", user_id=identity.id)
            self._notify(None)
            return None

        return identity
