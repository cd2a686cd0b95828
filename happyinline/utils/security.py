from typing import Any, Dict

import jwt

from happyinline.config import JWT_ALGORITHM, JWT_AUDIENCE, JWT_SECRET


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify a bearer token issued by the auth backend. Raises ``jwt.InvalidTokenError``."""
    payload = jwt.decode(
        token,
        JWT_SECRET,
        algorithms=[JWT_ALGORITHM],
        audience=JWT_AUDIENCE,
        options={"require": ["sub", "exp"]},
    )
    return payload
