"""
Shared request dependencies
"""
from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, Request


def get_student_id(x_student_id: Optional[str] = Header(None)) -> UUID:
    """
    Identity of the calling student

    Authentication happens upstream; the gateway forwards the verified id in
    the X-Student-Id header.
    """
    if not x_student_id:
        raise HTTPException(status_code=401, detail="Missing X-Student-Id header")
    try:
        return UUID(x_student_id)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid X-Student-Id header")


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")
