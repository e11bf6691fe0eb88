"""Secure secret storage helpers for provider API keys.

Responsibilities:
- Persist provider API keys in an OS-backed secure credential store.
- Resolve keys by opaque reference so settings never hold raw secrets.
- Avoid logging or exposing secret values in diagnostics.

Key types:
- `SecretStore`: interface for reference-keyed secret persistence.
- `KeyringSecretStore`: keyring-backed secure secret storage.
"""

from __future__ import annotations

from dataclasses import dataclass

import keyring
from keyring.backends import fail
from keyring.errors import PasswordDeleteError


_DEFAULT_SERVICE_NAME = "veya"


def api_key_ref_for(provider_id: str) -> str:
    """Return the secret reference used for a provider endpoint's API key."""

    return f"api_key_{provider_id}"


class SecretStore:
    """Interface for secure reference-keyed secret operations."""

    def is_available(self) -> bool:
        """Return whether secure secret operations are available."""

        raise NotImplementedError

    def put(self, ref_id: str, secret: str) -> str:
        """Persist a secret and return its reference."""

        raise NotImplementedError

    def get(self, ref_id: str) -> str | None:
        """Load a secret by reference, returning `None` when missing."""

        raise NotImplementedError

    def delete(self, ref_id: str) -> bool:
        """Delete a secret and return whether one existed."""

        raise NotImplementedError


@dataclass(slots=True)
class KeyringSecretStore(SecretStore):
    """Secure secret store backed by the `keyring` package."""

    service_name: str = _DEFAULT_SERVICE_NAME

    def _keyring_module(self):
        """Return the keyring module used for backend calls."""

        return keyring

    def is_available(self) -> bool:
        """Return `True` unless the active keyring backend is the fail backend."""

        return not isinstance(self._keyring_module().get_keyring(), fail.Keyring)

    def put(self, ref_id: str, secret: str) -> str:
        """Persist a normalized secret under `ref_id`."""

        normalized = secret.strip()
        if not normalized:
            raise ValueError("Secret must be a non-empty string.")
        self._keyring_module().set_password(self.service_name, ref_id, normalized)
        return ref_id

    def get(self, ref_id: str) -> str | None:
        """Get a normalized secret from keyring, returning `None` when missing."""

        value = self._keyring_module().get_password(self.service_name, ref_id)
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        return normalized

    def delete(self, ref_id: str) -> bool:
        """Remove a secret from keyring and report if one was present."""

        if self.get(ref_id) is None:
            return False
        try:
            self._keyring_module().delete_password(self.service_name, ref_id)
        except PasswordDeleteError:
            return False
        return True


def create_secret_store() -> SecretStore:
    """Create the default secure secret store implementation."""

    return KeyringSecretStore()
