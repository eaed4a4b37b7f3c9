from __future__ import annotations
"""FastAPI dependencies shared by the routers."""

from fastapi import Header, HTTPException, Request

from storyreel.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    """Owner identity. Authentication happens upstream; this only reads the header."""
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="X-Owner-Id header required")
    return x_owner_id
