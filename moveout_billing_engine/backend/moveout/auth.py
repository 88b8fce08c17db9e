# backend/moveout/auth.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request

from .config import settings


@dataclass(frozen=True)
class Principal:
    user_id: str
    display_name: Optional[str]
    role: str  # technician | manager | admin


ROLE_ORDER = {"technician": 1, "manager": 2, "admin": 3}


def _require_role(principal: Principal, min_role: str) -> None:
    if ROLE_ORDER.get(principal.role, 0) < ROLE_ORDER.get(min_role, 999):
        raise HTTPException(status_code=403, detail=f"Requires role >= {min_role}")


def get_principal(request: Request) -> Principal:
    """
    Identity is established by the console gateway in front of this service,
    which forwards it as headers (names configurable in settings).
    """
    user_id = (request.headers.get(settings.dev_header_user_id) or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_user_id} header")

    name = (request.headers.get(settings.dev_header_user_name) or "").strip() or None
    role = (request.headers.get(settings.dev_header_user_role) or "technician").strip().lower()
    if role not in ROLE_ORDER:
        raise HTTPException(status_code=403, detail=f"Unknown role {role!r}")
    return Principal(user_id=user_id, display_name=name, role=role)


def require_technician(p: Principal = Depends(get_principal)) -> Principal:
    _require_role(p, "technician")
    return p


def require_manager(p: Principal = Depends(get_principal)) -> Principal:
    _require_role(p, "manager")
    return p
