"""Request security - anti-forgery tokens."""

from platformcore.security.tokens import DEFAULT_ACTION, AntiForgeryTokenService

__all__ = ["DEFAULT_ACTION", "AntiForgeryTokenService"]
