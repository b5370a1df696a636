"""
Bearer token dependencies.

Tokens are not verified here; they are forwarded to the HR backend, which
issued them and rejects the ones it does not accept.
"""
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.receipts.workflow import owner_key

security = HTTPBearer()


async def get_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    return credentials.credentials


async def get_owner(token: str = Depends(get_token)) -> str:
    return owner_key(token)
