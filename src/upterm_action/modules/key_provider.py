"""GitHub Public Key Provider Module

Fetch the SSH public keys registered with GitHub user profiles via REST API.

Security Requirements:
- HTTPS only for API calls
- No credential storage
- Input validation
- Timeout on API calls
"""

import logging
import re
from dataclasses import dataclass, field

import requests

from upterm_action.exceptions import UptermActionError

logger = logging.getLogger(__name__)


class KeyProviderError(UptermActionError):
    """Raised when no usable keys were found for restricted access."""

    pass


@dataclass
class AllowedKeySet:
    """Deduplicated public keys in the order they were first seen."""

    keys: list[str] = field(default_factory=list)
    users: list[str] = field(default_factory=list)

    def add(self, key: str) -> bool:
        """Add a key; returns False if it was already present."""
        key = key.strip()
        if not key or key in self.keys:
            return False
        self.keys.append(key)
        return True

    def __len__(self) -> int:
        return len(self.keys)

    def __iter__(self):
        return iter(self.keys)

    @property
    def is_empty(self) -> bool:
        return not self.keys

    def require_keys(self, restricted: bool) -> None:
        """
        Check the set is usable for the requested access mode.

        Raises:
            KeyProviderError: If access is restricted and no keys were found
        """
        if not restricted or not self.is_empty:
            return
        if not self.users:
            raise KeyProviderError("Access is restricted but no GitHub users are known")
        raise KeyProviderError(
                f"No public SSH keys registered with GitHub profiles: {', '.join(self.users)}"
            )


class GitHubKeyProvider:
    """Look up users' public keys through the GitHub REST API."""

    API_BASE = "https://api.github.com"
    API_TIMEOUT = 30
    PER_PAGE = 100

    def __init__(self, token: str | None = None, api_base: str | None = None):
        self.token = token
        self.api_base = (api_base or self.API_BASE).rstrip("/")

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def fetch_user_keys(self, username: str) -> list[str]:
        """Fetch every public key registered for one user.

        Follows the Link header until the last page.

        Args:
            username: GitHub login

        Returns:
            list[str]: Public key lines

        Raises:
            KeyProviderError: If the API call fails
            ValueError: If the username is invalid
        """
        self._validate_username(username)

        url: str | None = f"{self.api_base}/users/{username}/keys"
        params: dict[str, int] | None = {"per_page": self.PER_PAGE}
        keys: list[str] = []

        while url:
            try:
                response = requests.get(
                    url, headers=self._headers(), params=params, timeout=self.API_TIMEOUT
                )
            except requests.RequestException as e:
                raise KeyProviderError(f"Failed to fetch keys for {username}: {e}") from e

            if response.status_code != 200:
                try:
                    error_msg = response.json().get("message", "Unknown error")
                except ValueError:
                    error_msg = "Unknown error"
                raise KeyProviderError(
                    f"Failed to fetch keys for {username}: {response.status_code} - {error_msg}"
                )

            keys.extend(item["key"] for item in response.json() if item.get("key"))

            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            params = None

        return keys

    def fetch_keys(self, usernames: list[str] | tuple[str, ...]) -> AllowedKeySet:
        """Fetch the union of several users' keys.

        A failure for one user is logged and that user skipped.

        Args:
            usernames: GitHub logins, in priority order

        Returns:
            AllowedKeySet: Keys of every user that could be fetched
        """
        key_set = AllowedKeySet(users=list(usernames))
        if not usernames:
            return key_set

        logger.info(f"Fetching SSH keys registered with GitHub profiles: {', '.join(usernames)}")
        for username in usernames:
            try:
                for key in self.fetch_user_keys(username):
                    key_set.add(key)
            except (KeyProviderError, ValueError) as e:
                logger.error(f"Error fetching keys for {username}. Error: {e}")

        logger.info(f"Fetched {len(key_set)} ssh public keys")
        return key_set

    @staticmethod
    def _validate_username(username: str) -> None:
        """Validate a GitHub login."""
        if not username:
            raise ValueError("Username cannot be empty")

        if not re.match(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?$", username):
            raise ValueError(f"Invalid GitHub username: {username}")


__all__ = ["AllowedKeySet", "GitHubKeyProvider", "KeyProviderError"]
