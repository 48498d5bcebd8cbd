"""API key storage for the Ambiscene CLI.

Responsibilities:
- Keep the service API key in the operating system keyring.
- Normalize stored values so blank entries read as "not set".
- Never echo secret values in errors or status output.

Key types:
- `CredentialStore`: read/write/delete contract used by the CLI.
- `KeyringCredentialStore`: implementation on top of `keyring`.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import ModuleType

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

KEYRING_SERVICE = "ambiscene"
KEYRING_ACCOUNT = "api_key"


class CredentialStore:
    """Contract for the CLI's API key storage."""

    def is_available(self) -> bool:
        """Return whether a storage backend can be used."""

        raise NotImplementedError

    def get_api_key(self) -> str | None:
        """Return the stored key, or `None` when nothing usable is stored."""

        raise NotImplementedError

    def set_api_key(self, api_key: str) -> None:
        """Store `api_key`, replacing any previous value."""

        raise NotImplementedError

    def clear_api_key(self) -> bool:
        """Delete the stored key; returns `False` when there was none."""

        raise NotImplementedError


@dataclass(slots=True)
class KeyringCredentialStore(CredentialStore):
    """`CredentialStore` persisting one key under a keyring service/account pair."""

    service_name: str = KEYRING_SERVICE
    account_name: str = KEYRING_ACCOUNT

    def _load_keyring_module(self) -> ModuleType:
        """Return the module providing the keyring API."""

        return keyring

    def is_available(self) -> bool:
        """Return `False` for the fail/null backends keyring selects without a real store."""

        backend = self._load_keyring_module().get_keyring()
        return getattr(backend, "priority", 1) > 0

    def get_api_key(self) -> str | None:
        """Read and strip the stored key; backend errors read as missing."""

        if not self.is_available():
            return None
        try:
            stored = self._load_keyring_module().get_password(self.service_name, self.account_name)
        except KeyringError:
            return None
        return (stored or "").strip() or None

    def set_api_key(self, api_key: str) -> None:
        """Write the stripped key.

        Raises:
            RuntimeError: No usable keyring backend is configured.
            ValueError: The key is blank.
        """

        if not self.is_available():
            raise RuntimeError(
                "Secure credential storage is unavailable because no keyring backend "
                "is configured for this environment."
            )
        cleaned = api_key.strip()
        if not cleaned:
            raise ValueError("API key must be a non-empty string.")
        self._load_keyring_module().set_password(self.service_name, self.account_name, cleaned)

    def clear_api_key(self) -> bool:
        """Delete the stored key when present."""

        if self.get_api_key() is None:
            return False
        try:
            self._load_keyring_module().delete_password(self.service_name, self.account_name)
        except PasswordDeleteError:
            return False
        return True


def create_credential_store() -> CredentialStore:
    """Return the credential store the CLI uses by default."""

    return KeyringCredentialStore()
