"""Back-office authentication for the villa admin routes"""
import logging
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from domain.auth import VILLA_ADMIN_ROLE, User, UserInDB
from infrastructure.config import settings
from infrastructure.security import ADMIN_SCOPE, decode_access_token, get_password_hash
from api.schemas import TokenData

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")

# The villa has a single back-office account configured through settings
_admin_accounts = {
    settings.ADMIN_USERNAME: {
        "username": settings.ADMIN_USERNAME,
        "full_name": "Villa Admin",
        "email": settings.ADMIN_EMAIL,
        "plain_password": settings.ADMIN_PASSWORD,
        "role": VILLA_ADMIN_ROLE,
        "disabled": False,
        "user_id": uuid.uuid5(uuid.NAMESPACE_DNS, f"admin.{settings.ADMIN_USERNAME}")
    }
}

# Hashed on first login, bcrypt is too slow to run at import
_password_hash_cache = {}


def _get_hashed_password(username: str) -> str:
    if username not in _password_hash_cache:
        account = _admin_accounts.get(username)
        if account:
            _password_hash_cache[username] = get_password_hash(account["plain_password"])
    return _password_hash_cache.get(username, "")


def get_user(username: str):
    account = _admin_accounts.get(username)
    if account is None:
        return None
    fields = {key: value for key, value in account.items() if key != "plain_password"}
    return UserInDB(**fields, hashed_password=_get_hashed_password(username))


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(token: str = Depends(oauth2_scheme)):
    try:
        payload = decode_access_token(token)
    except JWTError as e:
        logger.warning("Rejected admin token: %s", e)
        raise _credentials_exception()

    token_data = TokenData(username=payload.get("sub"), scope=payload.get("scope"))
    if token_data.username is None:
        raise _credentials_exception()
    if token_data.scope != ADMIN_SCOPE:
        logger.warning("Rejected token for %s with scope %r", token_data.username, token_data.scope)
        raise _credentials_exception("Token is not valid for villa administration")

    user = get_user(username=token_data.username)
    if user is None:
        raise _credentials_exception()
    return user


async def get_current_active_user(current_user: User = Depends(get_current_user)):
    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


async def get_current_admin(current_user: User = Depends(get_current_active_user)):
    if not current_user.is_admin:
        logger.warning("User %s tried to reach a villa admin route", current_user.username)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user
