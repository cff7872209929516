from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.permissions import Actor, Role


async def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    """
    Builds the actor from the identity headers set by the upstream auth
    gateway. Token validation happens there, not in this service.
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity headers.")
    try:
        role = Role(x_user_role.upper())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Unknown role '{x_user_role}'.")
    return Actor(id=x_user_id, role=role)
