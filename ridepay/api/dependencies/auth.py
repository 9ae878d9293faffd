# ridepay/api/dependencies/auth.py
"""
Acting-user resolution.

Authentication happens upstream; requests arrive with the caller's user id
in the `X-User-Id` header. Owner and driver checks are done by the services.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return user_id
