"""
Merchant Pipeline - Routes Auth
Resolves the caller from its session token. Login and user management live
in the admin console; the board only needs to know who is calling.
Sessions and users are read from `app.state.auth_db` (see server.create_app).
"""

from typing import Optional

from fastapi import HTTPException, Depends, Query, Request, WebSocket, WebSocketException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from merchant_pipeline.config import now_iso
from merchant_pipeline.services.permissions import get_preset_permissions

security = HTTPBearer(auto_error=False)


async def get_current_user(request: Request, credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Récupère l'utilisateur connecté depuis le token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return await get_user_for_token(request.app.state.auth_db, credentials.credentials)


async def get_websocket_user(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Same check for the board WebSocket (browsers cannot set headers there)."""
    if not token:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Not authenticated")
    try:
        return await get_user_for_token(websocket.app.state.auth_db, token)
    except HTTPException as e:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason=e.detail) from e


async def get_user_for_token(database, token: str) -> dict:
    session = await database.sessions.find_one({
        "token": token,
        "expires_at": {"$gt": now_iso()}
    })

    if not session:
        raise HTTPException(status_code=401, detail="Session expired")

    user = await database.users.find_one(
        {"id": session["user_id"]},
        {"_id": 0, "password": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.get("is_active", user.get("active", True)):
        raise HTTPException(status_code=403, detail="Account disabled")

    # Ensure permissions exist (migration safety)
    if not user.get("permissions"):
        user["permissions"] = get_preset_permissions(user.get("role", "viewer"))

    return user
