"""Anti-forgery tokens for listing requests.

A token is issued to a page for one identity and one action, and must be
echoed back with every listing request. Tokens are:
- Time-limited (default 12 hours)
- Identity- and action-bound
- Signed (tamper-proof)

Token format: {expires_at}.{binding_hash}.{signature}
"""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Any, NoReturn

from platformcore.errors import SecurityError

logger = logging.getLogger(__name__)

DEFAULT_ACTION = "datatable"


@dataclass
class ParsedToken:
    """Parsed anti-forgery token data."""

    expires_at: int
    binding_hash: str
    signature: str


class AntiForgeryTokenService:
    """Generates and verifies anti-forgery tokens."""

    def __init__(self, secret_key: str, ttl_seconds: int = 12 * 60 * 60):
        """Initialize the token service.

        Args:
            secret_key: Secret key for signing tokens
            ttl_seconds: Token time-to-live in seconds
        """
        if not secret_key:
            raise ValueError("secret_key is required")
        self.secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    def generate(self, identity_id: str, action: str = DEFAULT_ACTION) -> str:
        """Issue a token for ``identity_id`` and ``action``."""
        expires_at = int(time.time()) + self.ttl_seconds
        binding_hash = self._hash(f"{action}:{identity_id}")[:16]
        payload = f"{expires_at}.{binding_hash}"
        return f"{payload}.{self._sign(payload)[:32]}"

    def verify(self, token: Any, identity_id: str, action: str = DEFAULT_ACTION) -> None:
        """Verify a token.

        The reason for a failure is logged; the raised error carries only
        the generic message.

        Raises:
            SecurityError: Token missing, malformed, expired, forged or
                issued to another identity/action
        """
        if token is None or token == "":
            self._reject("missing token", identity_id)

        if not isinstance(token, str) or not token.isascii():
            self._reject("malformed token", identity_id)

        parsed = self._parse(token)
        if parsed is None:
            self._reject("malformed token", identity_id)

        payload = f"{parsed.expires_at}.{parsed.binding_hash}"
        if not hmac.compare_digest(parsed.signature, self._sign(payload)[:32]):
            self._reject("invalid signature", identity_id)

        if parsed.expires_at < time.time():
            self._reject("expired token", identity_id)

        expected_binding = self._hash(f"{action}:{identity_id}")[:16]
        if not hmac.compare_digest(parsed.binding_hash, expected_binding):
            self._reject("token issued to another identity or action", identity_id)

    def _reject(self, reason: str, identity_id: str) -> NoReturn:
        logger.warning("Anti-forgery check failed for identity %s: %s", identity_id, reason)
        raise SecurityError()

    def _parse(self, token: str) -> ParsedToken | None:
        parts = token.split(".")
        if len(parts) != 3:
            return None
        try:
            expires_at = int(parts[0])
        except ValueError:
            return None
        return ParsedToken(expires_at=expires_at, binding_hash=parts[1], signature=parts[2])

    def _hash(self, content: str) -> str:
        return hashlib.sha256(content.encode()).hexdigest()

    def _sign(self, payload: str) -> str:
        return hmac.new(
            self.secret_key.encode(),
            payload.encode(),
            hashlib.sha256,
        ).hexdigest()
