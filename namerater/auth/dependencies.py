from __future__ import annotations

from fastapi import Depends, HTTPException, Path, Query, Request

from ..names.data_store import DataStore, get_store
from ..names.models import Couple


def require_user(request: Request) -> dict:
    """Raise 401 if no user has identified themselves."""
    user = request.session.get("user")
    if not user:
        raise HTTPException(status_code=401, detail="Not identified")
    return user


def require_admin(request: Request) -> dict:
    """Raise 401 if no admin session, 403 if the session is not an admin one."""
    user = request.session.get("user")
    admin = request.session.get("admin")
    if not user and not admin:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return {"role": "admin"}


def check_membership(store: DataStore, user: dict, couple_id: int) -> Couple:
    """Return the couple, raising 404 if missing and 403 if *user* is not in it."""
    couple = store.couples.get(couple_id)
    if couple is None:
        raise HTTPException(status_code=404, detail="Couple not found")
    if user["id"] not in couple.members():
        raise HTTPException(status_code=403, detail="Not a member of this couple")
    return couple


def require_member(
    couple_id: int = Query(..., ge=1),
    user: dict = Depends(require_user),
    store: DataStore = Depends(get_store),
) -> Couple:
    return check_membership(store, user, couple_id)


def require_path_member(
    couple_id: int = Path(..., ge=1),
    user: dict = Depends(require_user),
    store: DataStore = Depends(get_store),
) -> Couple:
    return check_membership(store, user, couple_id)
