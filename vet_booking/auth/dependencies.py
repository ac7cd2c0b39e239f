import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from vet_booking.auth import jwt_handler

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_requestor_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Resolve the caller from the bearer token.

    Sessions live outside this service; the token subject is taken as the
    owner or provider id and passed explicitly into every engine call.
    """
    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        logger.info('Rejected bearer token: %s', exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    requestor_id = payload.get("sub")
    if not requestor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")
    return str(requestor_id)
