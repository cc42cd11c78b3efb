# Identity gate: bearer credential -> {user_id, role}

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRE_HOURS, RESET_TOKEN_MINUTES, now_utc
from .errors import Unauthenticated, Unauthorized, InvalidInput
from .models import Identity, UserRole, UserResponse
from .store import Store, as_utc

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


# ---------------------------------------------------------------------------
# Passwords & tokens
# ---------------------------------------------------------------------------
def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > 72:
        raise InvalidInput("Password cannot exceed 72 bytes")
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        return False


def create_access_token(user: dict, expires_in: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_in or timedelta(hours=JWT_EXPIRE_HOURS))
    claims = {"sub": str(user["_id"]), "role": user["role"],
              "name": user["username"], "exp": expire}
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Identity:
    """Verify signature and expiry; no storage access."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise Unauthenticated("Invalid token")
    user_id, role = payload.get("sub"), payload.get("role")
    if not user_id or role not in [r.value for r in UserRole]:
        raise Unauthenticated("Invalid token")
    return Identity(user_id=user_id, role=role, username=payload.get("name") or "")


def token_expiry(token: str) -> datetime:
    claims = jwt.get_unverified_claims(token)
    return datetime.fromtimestamp(claims.get("exp", 0), tz=timezone.utc)


def user_to_response(user: dict) -> UserResponse:
    return UserResponse(
        id=str(user["_id"]), username=user["username"], full_name=user["full_name"],
        email=user["email"], location=user.get("location"), role=user["role"],
        created_at=user["created_at"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
async def get_store(request: Request) -> Store:
    return request.app.state.store


async def authenticate(token: Optional[str], store: Store) -> Identity:
    if not token:
        raise Unauthenticated()
    identity = decode_token(token)
    revoked = await store.run(store.db.revoked_tokens.find_one, {"token": token})
    if revoked:
        raise Unauthenticated("Token has been revoked")
    return identity


async def get_identity(token: Optional[str] = Depends(oauth2_scheme),
                       store: Store = Depends(get_store)) -> Identity:
    return await authenticate(token, store)


def require_role(*roles):
    async def role_checker(identity: Identity = Depends(get_identity)):
        if identity.role.value not in roles:
            raise Unauthorized()
        return identity
    return role_checker


async def revoke_token(token: str, store: Store):
    doc = {"token": token, "expires_at": token_expiry(token)}
    await store.run(store.db.revoked_tokens.insert_one, doc)
    logger.info("Token revoked (expires %s)", doc["expires_at"].isoformat())


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------
def reset_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def issue_reset_token(store: Store, email: str,
                            clock: Callable[[], datetime] = now_utc) -> Tuple[Optional[dict], Optional[str]]:
    """Returns ``(user, token)``, or ``(None, None)`` when no account uses the email.

    Only the digest of the token is stored; the plain token goes out once, in
    the reset notice.
    """
    user = await store.run(store.db.users.find_one, {"email": email.strip()})
    if user is None:
        logger.info("Password reset requested for unknown email")
        return None, None
    token = secrets.token_urlsafe(32)
    expires = clock() + timedelta(minutes=RESET_TOKEN_MINUTES)
    await store.run(store.db.users.update_one, {"_id": user["_id"]},
                    {"$set": {"reset_token_hash": reset_digest(token), "reset_token_expires": expires}})
    logger.info("Password reset token issued for %s (expires %s)", user["username"], expires.isoformat())
    return user, token


async def reset_password(store: Store, token: str, new_password: str,
                         clock: Callable[[], datetime] = now_utc) -> dict:
    digest = reset_digest(token)
    user = await store.run(store.db.users.find_one, {"reset_token_hash": digest})
    if user is None or as_utc(user.get("reset_token_expires")) is None \
            or clock() > as_utc(user["reset_token_expires"]):
        raise InvalidInput("Invalid or expired reset token")
    # Matching on the digest makes the token single-use
    updated = await store.run(
        store.db.users.find_one_and_update,
        {"_id": user["_id"], "reset_token_hash": digest},
        {"$set": {"hashed_password": hash_password(new_password)},
         "$unset": {"reset_token_hash": "", "reset_token_expires": ""}})
    if updated is None:
        raise InvalidInput("Invalid or expired reset token")
    logger.info("Password reset for %s", user["username"])
    return user
