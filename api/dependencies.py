"""
FastAPI dependencies: settings, store, services and caller identity.

The caller's identity is established upstream by the authentication provider
and forwarded as headers:
X-User-Uid, X-User-Name, X-User-Email, X-User-Role.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Iterable, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from domain.sale import Actor, UserRole
from repositories.memory_store import InMemorySalesStore
from repositories.store import SalesStore, SupabaseSalesStore
from services.commission_summary_service import CommissionSummaryService
from services.sale_lifecycle_service import SaleLifecycleManager
from services.sale_tracking_service import SaleTrackingService
from services.settings import CommissionSettings, load_settings

logger = logging.getLogger(__name__)

# Roles a forwarded identity may carry; "system" is internal only.
CALLER_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.REP})


def get_settings() -> CommissionSettings:
    return load_settings()


@lru_cache(maxsize=1)
def _build_store(backend: str) -> SalesStore:
    if backend == "memory":
        logger.warning("Using in-memory sales store; data is lost on restart")
        return InMemorySalesStore()

    from repositories.client import get_supabase

    return SupabaseSalesStore(get_supabase())


def get_store(settings: CommissionSettings = Depends(get_settings)) -> SalesStore:
    return _build_store(settings.store_backend)


def get_lifecycle_manager(
    store: SalesStore = Depends(get_store),
    settings: CommissionSettings = Depends(get_settings),
) -> SaleLifecycleManager:
    return SaleLifecycleManager(
        store,
        settings.build_calculator(),
        settings.build_detector(),
        evidence_window=settings.evidence_window,
        instagram_prefix=settings.instagram_prefix,
    )


def get_tracking_service(
    store: SalesStore = Depends(get_store),
    settings: CommissionSettings = Depends(get_settings),
    lifecycle: SaleLifecycleManager = Depends(get_lifecycle_manager),
) -> SaleTrackingService:
    return SaleTrackingService(store, settings.build_detector(), lifecycle)


def get_summary_service(
    store: SalesStore = Depends(get_store),
    settings: CommissionSettings = Depends(get_settings),
) -> CommissionSummaryService:
    return CommissionSummaryService(store, tz=settings.tzinfo)


def get_current_actor(
    x_user_uid: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Actor:
    """Build the acting identity from the forwarded auth headers."""

    if not x_user_uid or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown role")
    if role not in CALLER_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unknown role")

    return Actor(
        uid=x_user_uid.strip(),
        name=(x_user_name or "").strip() or x_user_uid.strip(),
        email=(x_user_email or "").strip(),
        role=role,
    )


def require_role(roles: Iterable[UserRole]):
    allowed = frozenset(UserRole(role) for role in roles)

    def _dependency(request: Request, actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            logger.warning(
                "Access denied (role_denied): uid=%s role=%s endpoint=%s",
                actor.uid,
                actor.role.value,
                f"{request.method} {request.url.path}",
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return actor

    return _dependency


__all__ = [
    "get_current_actor",
    "get_lifecycle_manager",
    "get_settings",
    "get_store",
    "get_summary_service",
    "get_tracking_service",
    "require_role",
]
