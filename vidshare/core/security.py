from typing import Optional

from jose import JWTError, jwt

from .config import get_settings


def decode_access_token(token: str) -> Optional[str]:
    """Return the subject of a bearer token issued by the auth provider, or None."""
    settings = get_settings()
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError:
        return None
    return payload.get("sub")
