# fastapi dependency injection
# resolves the bearer token to the current user document

import logging
from typing import Optional

from bson import ObjectId
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from journey.errors import AuthError
from journey.services.auth_service import decode_token
from journey.services.db import Database, get_db

logger = logging.getLogger(__name__)

# auto_error off so a missing header renders as AUTH_REQUIRED, not fastapi's 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_db),
) -> dict:
    """extract and validate the current user from the jwt bearer token"""
    if credentials is None:
        raise AuthError("Unauthorized")

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access":
        raise AuthError("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Token missing subject")

    try:
        user = await db.users.find_one({"_id": ObjectId(user_id)})
    except Exception:
        user = None

    if not user:
        raise AuthError("User not found")

    user = dict(user)
    user["id"] = str(user.pop("_id"))
    return user
