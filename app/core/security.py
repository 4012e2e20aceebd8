from jose import jwt

from app.core.config import settings

# Tokens are issued by the account service; this API only needs to read them.
# Claims used here: sub (user id) and role.
ALGO = "HS256"


def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGO])
