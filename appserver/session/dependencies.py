"""FastAPI dependencies for the request session"""

from typing import Annotated, Any, Dict, Optional

from fastapi import Depends, HTTPException, Request


def get_session(request: Request) -> Dict[str, Any]:
    """Session payload of the current request (empty dict when anonymous)"""
    payload = getattr(request.state, "session", None)
    if payload is None:
        payload = {}
        request.state.session = payload
    return payload


def get_user(request: Request) -> Optional[Any]:
    """User attached to the current request, if any"""
    return getattr(request.state, "user", None)


def require_user(user: Annotated[Optional[Any], Depends(get_user)]) -> Any:
    """Current user; anonymous requests get 401"""
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user
