"""Bearer-token authentication for the course management API.

`POST /api/users/login` issues a JWT with `user_id`, `email` and `role`
claims. `get_current_user` turns such a token back into the `User` row
of the request's session. The role in the token must still match the
stored role, and a student who has not finished first-time password
setup is refused even if it holds a validly signed token.
"""

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlmodel import Session

from . import models, repositories, services
from .config import settings
from .database import get_session

bearer_scheme = HTTPBearer()

REQUIRED_CLAIMS = ["exp", "user_id", "role"]


def decode_token(token: str) -> dict:
    """Verify signature, expiry and required claims; return the claims.

    Raises HTTPException(401) when the token cannot be trusted.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=f'invalid token: {e}')


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency returning the account behind the bearer token.

    401 when the token is invalid, its user is gone or its role claim no
    longer matches the account; 403 for a student still in the
    first-login state.
    """
    claims = decode_token(credentials.credentials)
    user = repositories.UserRepository(db).get(claims['user_id'])
    if not user:
        raise HTTPException(status_code=401, detail='user not found')
    if user.role != claims['role']:
        raise HTTPException(status_code=401, detail='token role does not match account')
    if services.AuthService.needs_password_setup(user):
        raise HTTPException(status_code=403, detail='password setup required')
    return user
