import logging
from functools import lru_cache
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

RSA_ALGORITHMS = ["RS256", "RS384", "RS512"]


@lru_cache(maxsize=8)
def _jwks_client(jwks_uri: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_uri, cache_keys=True)


def verify_token(token: str, settings) -> dict:
    """Verifies a bearer token with JWKS (RS*) when configured, else the HS256 secret."""
    kwargs = {}
    options = {}
    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer
    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        options["verify_aud"] = False

    if settings.jwks_uri:
        signing_key = _jwks_client(settings.jwks_uri).get_signing_key_from_jwt(token)
        return jwt.decode(token, signing_key.key, algorithms=RSA_ALGORITHMS, options=options, **kwargs)
    if settings.jwt_secret:
        return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"], options=options, **kwargs)
    raise jwt.InvalidTokenError("No JWT verification method configured (set JWKS_URI or JWT_SECRET)")


def _user_from_claims(claims: dict) -> dict:
    roles = claims.get("roles") or claims.get("role") or []
    if isinstance(roles, str):
        roles = [roles]
    user_id = claims.get("userId") or claims.get("sub") or claims.get("uid")
    return {
        "userId": str(user_id) if user_id is not None else None,
        "email": claims.get("email"),
        "roles": roles,
        "raw": claims,
    }


def _dev_user() -> dict:
    return {"userId": "local_dev_user", "email": "dev@localhost", "roles": ["admin"], "raw": {}}


async def get_current_user(request: Request, auth: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """Verifies the bearer token in the Authorization header."""
    settings = request.app.state.settings
    if settings.bypass_auth:
        return _dev_user()

    if not auth:
        raise HTTPException(status_code=401, detail="Access token required")

    try:
        claims = verify_token(auth.credentials, settings)
    except jwt.PyJWTError as e:
        logger.warning("Token verification error: %s", e)
        raise HTTPException(status_code=403, detail="Invalid or expired token")

    user = _user_from_claims(claims)
    if not user["userId"]:
        raise HTTPException(status_code=403, detail="Invalid or expired token")
    return user


async def optional_user(request: Request, auth: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """Optional authentication: an invalid token is ignored rather than rejected."""
    settings = request.app.state.settings
    if settings.bypass_auth:
        return _dev_user()
    if not auth:
        return None
    try:
        return _user_from_claims(verify_token(auth.credentials, settings))
    except jwt.PyJWTError as e:
        logger.warning("Optional auth: invalid token ignored: %s", e)
        return None


async def require_self(userId: str, user: dict = Depends(get_current_user)):
    """Only lets users read their own data."""
    if user["userId"] != str(userId):
        logger.warning("Access denied: user %s tried to access data for user %s", user["userId"], userId)
        raise HTTPException(status_code=403, detail="Access denied to other user data")
    return user


async def require_admin(user: dict = Depends(get_current_user)):
    raw = user.get("raw") or {}
    is_admin = "admin" in user["roles"] or bool(raw.get("isAdmin") or raw.get("admin"))
    if not is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
