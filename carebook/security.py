from dataclasses import dataclass
from typing import Optional
import logging

from fastapi import Depends, Header

from . import models
from .exceptions import PermissionDenied
from .models import UserRole

# Configure logging for security events
security_logger = logging.getLogger("security")


@dataclass(frozen=True)
class Identity:
    """
    The caller, as asserted by the upstream identity provider.
    For doctors user_id is the provider id, for centers the center id.
    """
    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin

    def owns_provider_key(self, provider_key: str) -> bool:
        if self.role == UserRole.doctor:
            return provider_key == models.doctor_key(self.user_id)
        if self.role == UserRole.center:
            return provider_key == models.center_key(self.user_id)
        return False

    def manages_location(self, location_key: str) -> bool:
        return self.role == UserRole.center and location_key == self.user_id


async def get_current_identity(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> Identity:
    """Trusted identity headers set by the gateway in front of the engine."""
    if not x_user_id or not x_user_role:
        raise PermissionDenied("Missing identity headers")
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        security_logger.warning(f"Rejected unknown role '{x_user_role}' for user {x_user_id}")
        raise PermissionDenied(f"Unknown role '{x_user_role}'") from None
    return Identity(user_id=x_user_id.strip(), role=role)


def require_role(*allowed_roles: UserRole):
    """Dependency factory for role-based access control"""
    def role_dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if identity.role not in allowed_roles:
            raise PermissionDenied(
                f"Access denied. Required roles: {', '.join(r.value for r in allowed_roles)}"
            )
        return identity

    return role_dependency


def require_schedule_owner(identity: Identity, provider_key: str) -> None:
    """Schedules are edited by the owning doctor or center, or by an admin."""
    if identity.is_admin or identity.owns_provider_key(provider_key):
        return
    raise PermissionDenied("Not authorized to update this schedule")


def require_booking_access(identity: Identity, booking: models.Booking) -> None:
    """Patients see their own bookings; providers see bookings at their keys or center."""
    if identity.is_admin:
        return
    if identity.role == UserRole.patient and booking.patient_id == identity.user_id:
        return
    if identity.owns_provider_key(booking.provider_key) or identity.manages_location(booking.location_key):
        return
    raise PermissionDenied("Not authorized to access this booking")


def require_booking_staff(identity: Identity, booking: models.Booking) -> None:
    """Confirm, complete and annotate are provider-side actions."""
    if identity.role == UserRole.patient:
        raise PermissionDenied("Patients cannot perform this action")
    require_booking_access(identity, booking)


# Specific role dependencies
require_admin = require_role(UserRole.admin)


# Middleware for additional security headers
def add_security_headers(response):
    """Add security headers to response"""
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response
