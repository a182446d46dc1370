"""User roles and role-specific landing routes."""
import enum
from typing import Dict, Optional


class Role(str, enum.Enum):
    """Closed set of authorities a user can hold."""

    OPERATOR = "operateur"
    TECHNICIAN = "technicien"
    STOREKEEPER = "magasinier"
    RESPONSIBLE = "responsable"
    ADMIN = "admin"


DEFAULT_ROLE = Role.OPERATOR
DEFAULT_DASHBOARD = "/"

DASHBOARD_ROUTES: Dict[Role, str] = {
    Role.ADMIN: "/admin-dashboard",
    Role.OPERATOR: "/operateur-dashboard",
    Role.RESPONSIBLE: "/responsable-dashboard",
    Role.TECHNICIAN: "/technicien-dashboard",
    Role.STOREKEEPER: "/magasinier-dashboard",
}


def parse_role(value: Optional[str]) -> Optional[Role]:
    """Return the Role for a stored value, or None if it is not a known role."""
    try:
        return Role(value)
    except ValueError:
        return None


def dashboard_route(role: Optional[str]) -> str:
    """Landing route for a role; unknown roles land on the generic route."""
    parsed = parse_role(role)
    if parsed is None:
        return DEFAULT_DASHBOARD
    return DASHBOARD_ROUTES[parsed]
