"""
Client credential issuance for registered applications.

This module generates opaque client identifier/secret pairs from the
operating system's cryptographic random source. Identifiers are unique
against the set of identifiers already in use, and a regenerated pair never
repeats the pair it replaces.
"""

import base64
import secrets
from typing import Callable, Iterable, Optional

from .app_models import CredentialPair, CredentialRotation
from .errors import ExhaustedRetriesError, GenerationError

CLIENT_ID_BYTES = 16      # 128 bits, rendered as 32 hex characters
CLIENT_SECRET_BYTES = 32  # 256 bits, rendered as 43 base64url characters
DEFAULT_MAX_ATTEMPTS = 5


def _default_token_source(length: int) -> bytes:
    return secrets.token_bytes(length)


class CredentialIssuer:
    """
    Client credential generator.

    The issuer keeps no state between calls; ``max_attempts`` bounds the
    retries on a client_id collision and ``token_source`` supplies the raw
    random bytes (``secrets.token_bytes`` unless replaced in tests).
    """

    def __init__(self,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 token_source: Optional[Callable[[int], bytes]] = None):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.token_source = token_source or _default_token_source

    def _random_bytes(self, length: int) -> bytes:
        try:
            value = self.token_source(length)
        except (NotImplementedError, OSError) as e:
            raise GenerationError(f"Entropy source unavailable: {e}") from e

        if not isinstance(value, (bytes, bytearray)) or len(value) != length:
            raise GenerationError(
                f"Entropy source returned {type(value).__name__} instead of {length} random bytes"
            )
        return bytes(value)

    def generate_client_id(self) -> str:
        """Generate a fixed-length 32 character hexadecimal client identifier."""
        return self._random_bytes(CLIENT_ID_BYTES).hex()

    def generate_client_secret(self) -> str:
        """Generate a 43 character base64url client secret."""
        return base64.urlsafe_b64encode(
            self._random_bytes(CLIENT_SECRET_BYTES)
        ).decode('utf-8').rstrip('=')

    def issue(self, existing_client_ids: Iterable[str]) -> CredentialPair:
        """
        Issue a new credential pair.

        Args:
            existing_client_ids: Identifiers already held by any application

        Returns:
            CredentialPair: client_id unique against ``existing_client_ids``

        Raises:
            GenerationError: the random source is unavailable
            ExhaustedRetriesError: every attempt collided with an existing id

        Example:
            pair = CredentialIssuer().issue({"3f2a..."})
        """
        taken = set(existing_client_ids)

        for _ in range(self.max_attempts):
            client_id = self.generate_client_id()
            if client_id in taken:
                continue

            return CredentialPair(
                client_id=client_id,
                client_secret=self.generate_client_secret()
            )

        raise ExhaustedRetriesError(
            f"client_id collided with an existing identifier {self.max_attempts} times in a row; "
            "the entropy source is likely degraded",
            attempts=self.max_attempts
        )

    def regenerate(self,
                   application_id: int,
                   existing_client_ids: Iterable[str],
                   current: Optional[CredentialPair] = None) -> CredentialRotation:
        """
        Issue replacement credentials for an application.

        The current client_id counts as taken and a secret equal to the
        current one is drawn again, so the new pair never equals the old.
        The caller must store the result as one atomic replacement.
        """
        taken = set(existing_client_ids)
        if current is not None:
            taken.add(current.client_id)

        pair = self.issue(taken)
        # 256-bit secrets do not repeat unless the source is broken
        redraws = 0
        while current is not None and secrets.compare_digest(pair.client_secret, current.client_secret):
            if redraws == self.max_attempts:
                raise ExhaustedRetriesError(
                    "client_secret repeated the secret it replaces on every attempt",
                    attempts=self.max_attempts
                )
            pair = CredentialPair(
                client_id=pair.client_id,
                client_secret=self.generate_client_secret()
            )
            redraws += 1

        return CredentialRotation(
            application_id=application_id,
            credentials=pair,
            previous_client_id=current.client_id if current is not None else None
        )
