"""
Entitlement gate consumer.

Access tokens are issued by the auth service; this module only verifies
them and exposes the caller's identity and plan tier to the routes.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import Depends, Request

from shortlink_app.config import settings
from shortlink_app.exceptions import ForbiddenError, UnauthenticatedError
from shortlink_app.services.entitlements import PlanTier, is_premium, parse_plan
from shortlink_app.timeutils import utcnow


@dataclass(frozen=True)
class Identity:
    owner_id: int
    plan_tier: PlanTier
    email: Optional[str] = None

    @property
    def is_premium(self) -> bool:
        return is_premium(self.plan_tier)


def create_access_token(
    owner_id: int,
    plan_tier: PlanTier = PlanTier.FREE,
    email: Optional[str] = None,
    expires_in: timedelta = timedelta(minutes=15),
) -> str:
    """Sign an access token with the same claims the auth service uses"""
    payload = {
        "sub": str(owner_id),
        "email": email,
        "subscriptionPlan": parse_plan(plan_tier).value,
        "exp": utcnow() + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token.strip()
    return request.cookies.get(settings.access_token_cookie)


def get_current_identity(request: Request) -> Identity:
    """Dependency: verified identity, or 401"""
    token = _extract_token(request)
    if not token:
        raise UnauthenticatedError()

    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        owner_id = int(claims["sub"])
    except (jwt.PyJWTError, KeyError, TypeError, ValueError):
        raise UnauthenticatedError("Invalid session or token")

    return Identity(
        owner_id=owner_id,
        plan_tier=parse_plan(claims.get("subscriptionPlan")),
        email=claims.get("email"),
    )


def require_premium(identity: Identity = Depends(get_current_identity)) -> Identity:
    """Dependency: verified identity on a PRO or ENTERPRISE plan, or 403"""
    if not identity.is_premium:
        raise ForbiddenError()
    return identity
