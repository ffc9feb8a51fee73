"""
Subdomain routing.

Hosts map onto one of the request contexts:

    <slug>.n2wash.com          -> public booking for the instance
    <slug>.admin.n2wash.com    -> tenant admin panel
    super.admin.n2wash.com     -> super admin console

Anything else (localhost, bare IPs, the apex domain, foreign domains) is the
platform context, which carries no implicit tenant.
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from .config import BASE_DOMAIN, SUPER_ADMIN_SUBDOMAIN
from .database import get_db
from .models import Instance

logger = logging.getLogger(__name__)

CONTEXT_PUBLIC = "public"
CONTEXT_ADMIN = "admin"
CONTEXT_SUPER_ADMIN = "super_admin"
CONTEXT_PLATFORM = "platform"

RESERVED_LABELS = {"www", "api", "admin", "app"}


@dataclass(frozen=True)
class TenantContext:
    kind: str
    instance_slug: Optional[str] = None


PLATFORM = TenantContext(CONTEXT_PLATFORM)


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
        return True
    except ValueError:
        return False


def resolve_host(host: Optional[str], base_domain: str = BASE_DOMAIN) -> TenantContext:
    """Resolve a Host header value into a request context"""
    if not host:
        return PLATFORM

    host = host.strip().lower().rstrip(".")
    # Drop the port, keeping bracketed IPv6 literals intact
    if host.startswith("["):
        host = host.split("]")[0] + "]"
    elif host.count(":") == 1:
        host = host.split(":")[0]

    if host == "localhost" or host.endswith(".localhost") or _is_ip(host):
        return PLATFORM

    suffix = f".{base_domain}"
    if not host.endswith(suffix):
        return PLATFORM

    labels = host[: -len(suffix)].split(".")
    if len(labels) == 1:
        slug = labels[0]
        if slug in RESERVED_LABELS:
            return PLATFORM
        return TenantContext(CONTEXT_PUBLIC, slug)

    if len(labels) == 2 and labels[1] == "admin":
        slug = labels[0]
        if slug == SUPER_ADMIN_SUBDOMAIN:
            return TenantContext(CONTEXT_SUPER_ADMIN)
        if slug in RESERVED_LABELS:
            return PLATFORM
        return TenantContext(CONTEXT_ADMIN, slug)

    return PLATFORM


async def tenant_context_middleware(request: Request, call_next):
    """Attach the resolved context to request.state"""
    request.state.tenant = resolve_host(request.headers.get("host"))
    return await call_next(request)


def get_tenant_context(request: Request) -> TenantContext:
    return getattr(request.state, "tenant", None) or resolve_host(request.headers.get("host"))


def get_active_instance_by_slug(db: Session, slug: str) -> Optional[Instance]:
    return (
        db.query(Instance)
        .filter(Instance.slug == slug, Instance.active.is_(True), Instance.deleted_at.is_(None))
        .first()
    )


def get_public_instance(
    request: Request,
    slug: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> Instance:
    """
    Instance for public endpoints, taken from the subdomain or from the
    ?slug= query parameter when the request comes through the platform host.
    """
    context = get_tenant_context(request)
    instance_slug = context.instance_slug or slug
    if not instance_slug:
        raise HTTPException(status_code=404, detail="Instance not found")

    instance = get_active_instance_by_slug(db, instance_slug)
    if not instance:
        logger.warning(f"⚠️ Unknown or inactive instance requested: {instance_slug}")
        raise HTTPException(status_code=404, detail="Instance not found")
    return instance
