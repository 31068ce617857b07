import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from core.firebase import get_firestore_client, verify_id_token

logger = logging.getLogger(__name__)

# Standard credentials exception
CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)

# Roles Defined
ADMIN_ROLES = ["owner", "admin"]
HR_ROLES = ADMIN_ROLES + ["hr"]


def _profile_to_user(uid: str, profile: dict) -> dict:
    # Region partitions which geofences apply; older profiles only carry "country"
    region = profile.get("region") or profile.get("country") or None

    return {
        "uid": uid,
        "name": profile.get("displayName", "") or profile.get("fullName", ""),
        "email": profile.get("email", ""),
        "role": profile.get("role", ""),
        "region": region,
        "department": profile.get("department", ""),
    }


# Matches Firebase Auth Token To a Firestore User Profile
async def get_current_user(request: Request):
    # 1) Extract & Analyze Authorization Header
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    token = auth_header.split(" ", 1)[1]

    # 2) Verify This Points to a Real User Account
    try:
        decoded = verify_id_token(token)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token"
        )
    uid = decoded.get("uid")
    if not uid:
        raise CREDENTIALS_EXCEPTION

    # 3) Fetch the Firestore user profile
    try:
        snapshot = get_firestore_client().collection("users").document(uid).get()
    except Exception as e:
        logger.error(f"[AUTH] Firestore error fetching profile for {uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not fetch user profile.",
        )
    if not snapshot.exists:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User profile not found in Firestore",
        )

    return _profile_to_user(uid, snapshot.to_dict() or {})


# Admin Role Check Dependency
async def require_admin_role(
    current_user: Annotated[dict, Depends(get_current_user)]
):
    if current_user.get("role") not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User doesn't have sufficient privileges for this action",
        )
    return current_user


# HR Role Check Dependency (admins included)
async def require_hr_role(
    current_user: Annotated[dict, Depends(get_current_user)]
):
    if current_user.get("role") not in HR_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User doesn't have sufficient privileges for this action",
        )
    return current_user
