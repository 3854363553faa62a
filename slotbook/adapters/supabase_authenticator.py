"""
Customer authentication against the hosted backend's auth service.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
import requests
from keyring.errors import KeyringError
from rich.console import Console

from ..domain.exceptions import AuthenticationError
from .session import CustomerSession

logger = logging.getLogger(__name__)

console = Console()


KEYRING_SERVICE_NAME = "slotbook"


class SupabaseAuthenticator:
    """
    Handles sign-in and session renewal with email and password.

    Flow:
    1. Customer signs in once with email and password
    2. The session (access + refresh token) is cached
    3. Later calls reuse the cached access token
    4. Expired sessions are renewed with the refresh token
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        cache_file: Path | None = None,
        timeout_seconds: int = 30,
    ):
        """
        Initialize the authenticator.

        Args:
            url: Base URL of the hosted backend
            anon_key: Public API key of the project
            cache_file: Optional path to the session cache file
            timeout_seconds: HTTP timeout for auth requests
        """
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout_seconds = timeout_seconds

        self.cache_file = cache_file or Path.home() / ".slotbook_session.json"
        self._key_identifier = self.url
        self._keyring_supported = True
        self._cache_backend = "keyring"
        self._insecure_storage_warning: Optional[str] = None
        self.session = self._load_cache()

    @property
    def cache_backend(self) -> str:
        """Return the active cache backend (keyring or file)."""
        return self._cache_backend

    @property
    def insecure_storage_warning(self) -> Optional[str]:
        """Provide a warning message when the cache falls back to plaintext storage."""
        return self._insecure_storage_warning

    def _load_cache(self) -> Optional[CustomerSession]:
        """Load the cached session from keyring or disk if it exists."""
        serialized = self._load_cache_from_keyring()
        if serialized is None:
            serialized = self._load_cache_from_file()

        if not serialized:
            return None

        try:
            return CustomerSession.from_dict(json.loads(serialized))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Could not deserialize session cache: %s", exc)
            return None

    def _load_cache_from_keyring(self) -> Optional[str]:
        if not self._keyring_supported:
            return None

        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"reading credentials failed: {exc}")
            return None

    def _load_cache_from_file(self) -> Optional[str]:
        if self.cache_file.exists():
            try:
                with open(self.cache_file, "r", encoding="utf-8") as file_handle:
                    return file_handle.read()
            except OSError as exc:
                logger.warning("Could not load session cache file %s: %s", self.cache_file, exc)
        return None

    def _save_cache(self, session: CustomerSession) -> None:
        """Save the session to the configured backend."""
        serialized = json.dumps(session.to_dict())

        if self._keyring_supported and self._save_cache_to_keyring(serialized):
            return

        self._save_cache_to_file(serialized)

    def _save_cache_to_keyring(self, serialized: str) -> bool:
        try:
            keyring.set_password(KEYRING_SERVICE_NAME, self._key_identifier, serialized)
            self._cache_backend = "keyring"
            return True
        except KeyringError as exc:  # pragma: no cover - environment dependent
            self._handle_keyring_failure(f"writing credentials failed: {exc}")
            return False

    def _save_cache_to_file(self, serialized: str) -> None:
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as file_handle:
                file_handle.write(serialized)
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save session cache to %s: %s", self.cache_file, exc)

    def _handle_keyring_failure(self, reason: str) -> None:
        if self._keyring_supported:
            logger.warning(
                "Secure credential storage unavailable (%s). Falling back to plaintext cache.",
                reason,
            )
        self._keyring_supported = False
        self._cache_backend = "file"
        if not self._insecure_storage_warning:
            self._insecure_storage_warning = (
                f"Secure credential storage unavailable ({reason}). "
                f"Falling back to plaintext cache at {self.cache_file}."
            )

    def sign_in(self, email: str, password: str) -> CustomerSession:
        """
        Sign in with email and password and cache the new session.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        payload = self._token_request("password", {"email": email, "password": password})
        session = CustomerSession.from_token_response(payload)
        self.session = session
        self._save_cache(session)
        console.print(f"[bold green]✓ Sessão iniciada como {session.email}[/bold green]")
        return session

    def get_session(self, force_refresh: bool = False) -> CustomerSession:
        """
        Return a valid session, renewing it with the refresh token if needed.

        Raises:
            AuthenticationError: If nobody is signed in or renewal fails
        """
        if self.session is None:
            raise AuthenticationError("Not signed in. Run 'slotbook login' first.")

        if not force_refresh and not self.session.is_expired():
            return self.session

        logger.debug("Refreshing session for %s", self.session.email)
        payload = self._token_request(
            "refresh_token", {"refresh_token": self.session.refresh_token}
        )
        self.session = CustomerSession.from_token_response(payload)
        self._save_cache(self.session)
        return self.session

    def _token_request(self, grant_type: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.url}/auth/v1/token"
        try:
            response = requests.post(
                url,
                params={"grant_type": grant_type},
                headers={"apikey": self.anon_key, "Content-Type": "application/json"},
                json=body,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise AuthenticationError(f"Auth service unreachable: {exc}") from exc

        if response.status_code != 200:
            raise AuthenticationError(
                f"Authentication failed: {self._error_description(response)}"
            )

        try:
            data = response.json()
            if "access_token" not in data:
                raise KeyError("access_token")
            return data
        except (ValueError, KeyError) as exc:
            raise AuthenticationError(f"Unexpected auth response: {exc}") from exc

    @staticmethod
    def _error_description(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        return (
            data.get("error_description")
            or data.get("msg")
            or data.get("error")
            or f"HTTP {response.status_code}"
        )

    def clear_cache(self) -> None:
        """Forget the session (sign out locally)."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, self._key_identifier)
        except KeyringError as exc:  # pragma: no cover - environment dependent
            logger.warning("Could not remove credentials from keyring: %s", exc)
        self.session = None
        console.print("[green]Sessão encerrada.[/green]")
