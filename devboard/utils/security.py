"""Security utilities: JWT bearer tokens.

Tokens are issued by the external login service; this side only verifies them.
"""

import jwt

from devboard.config import Settings


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
