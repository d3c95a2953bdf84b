"""
Role-based access policy for the HMS front-ends.

This module provides:
- Role and capability definitions
- The role -> capability table consulted by every visibility decision
- The staff dashboard navigation tree and a single menu filter
- Role admission per front-end (staff dashboard vs. customer site)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple


class Role(str, Enum):
    """
    Roles as issued by the backend in UserProfile.role.
    """
    ADMIN = "ADMIN"
    RECEPTIONIST = "RECEPTIONIST"
    HOUSEKEEPING = "HOUSEKEEPING"
    MAINTENANCE = "MAINTENANCE"
    SECURITY = "SECURITY"
    WAITER = "WAITER"
    CHEF = "CHEF"
    POS_SERVICE = "POS_SERVICE"
    CUSTOMER = "CUSTOMER"


class AppKind(str, Enum):
    """Which front-end is running. Decides which roles may log in."""
    STAFF_DASHBOARD = "staff"
    CUSTOMER_SITE = "customer"


class Capability(str, Enum):
    """
    One capability per area of the staff dashboard.
    """
    HOME = "home"
    DASHBOARD = "dashboard"
    MANAGE_ACCOUNTS = "manage_accounts"         # Staff and customer tables
    LOYALTY_LEVELS = "loyalty_levels"
    ROOMS = "rooms"
    AMENITIES = "amenities"
    AMENITY_HISTORY = "amenity_history"
    BOOKINGS = "bookings"
    GUESTS = "guests"
    HOUSEKEEPING_REQUESTS = "housekeeping_requests"
    SERVICE_REQUESTS = "service_requests"
    FOLIOS = "folios"                           # Bills
    ASSETS = "assets"
    SERVICES = "services"
    INVENTORY = "inventory"                     # Suppliers, stock, receipts
    EXPENSES = "expenses"                       # Salaries, operating expenses
    AUDIT_REPORTS = "audit_reports"
    FEEDBACK = "feedback"
    HOUSEKEEPING_SCHEDULE = "housekeeping_schedule"
    MY_HOUSEKEEPING_TASKS = "my_housekeeping_tasks"
    MAINTENANCE_SCHEDULE = "maintenance_schedule"
    MY_MAINTENANCE_TASKS = "my_maintenance_tasks"
    WORK_SCHEDULE = "work_schedule"
    MY_SCHEDULE = "my_schedule"


# Personal views only make sense for staff who are themselves scheduled
_PERSONAL = {
    Capability.MY_HOUSEKEEPING_TASKS,
    Capability.MY_MAINTENANCE_TASKS,
    Capability.MY_SCHEDULE,
}

# Map each role to its capabilities
ROLE_CAPABILITIES: Dict[Role, Set[Capability]] = {
    Role.ADMIN: set(Capability) - _PERSONAL,

    Role.RECEPTIONIST: {
        Capability.HOME,
        Capability.ROOMS,
        Capability.BOOKINGS,
        Capability.GUESTS,
        Capability.FOLIOS,
        Capability.MY_SCHEDULE,
    },

    Role.HOUSEKEEPING: {
        Capability.HOME,
        Capability.ROOMS,
        Capability.AMENITY_HISTORY,
        Capability.HOUSEKEEPING_REQUESTS,
        Capability.MY_HOUSEKEEPING_TASKS,
        Capability.MY_SCHEDULE,
    },

    Role.MAINTENANCE: {
        Capability.HOME,
        Capability.ROOMS,
        Capability.AMENITY_HISTORY,
        Capability.MY_MAINTENANCE_TASKS,
        Capability.MY_SCHEDULE,
    },

    Role.SECURITY: {Capability.HOME, Capability.MY_SCHEDULE},
    Role.WAITER: {Capability.HOME, Capability.MY_SCHEDULE},
    Role.CHEF: {Capability.HOME, Capability.MY_SCHEDULE},

    Role.POS_SERVICE: {
        Capability.HOME,
        Capability.SERVICE_REQUESTS,
        Capability.MY_SCHEDULE,
    },

    # Customers never see the staff dashboard
    Role.CUSTOMER: set(),
}


@dataclass(frozen=True)
class NavItem:
    """
    Entry of the staff navigation tree.

    Leaves carry a path and the capability that makes them visible; groups
    carry children and are visible when at least one child is.
    """
    name: str
    path: Optional[str] = None
    capability: Optional[Capability] = None
    children: Tuple["NavItem", ...] = field(default_factory=tuple)


def _leaf(name: str, path: str, capability: Capability) -> NavItem:
    return NavItem(name=name, path=path, capability=capability)


def _group(name: str, *children: NavItem) -> NavItem:
    return NavItem(name=name, children=tuple(children))


NAVIGATION: Tuple[NavItem, ...] = (
    _leaf("Home", "/", Capability.HOME),
    _leaf("Dashboard", "/dashboard", Capability.DASHBOARD),
    _group(
        "Account Management",
        _leaf("Staff Table", "/employee-table", Capability.MANAGE_ACCOUNTS),
        _leaf("Customer Table", "/customer-table", Capability.MANAGE_ACCOUNTS),
    ),
    _leaf("Loyalty Level", "/loyalty-level", Capability.LOYALTY_LEVELS),
    _leaf("Room Management", "/room-table", Capability.ROOMS),
    _group(
        "Amenity Management",
        _leaf("Amenity", "/amenity", Capability.AMENITIES),
        _leaf("Amenity History", "/amenity-history", Capability.AMENITY_HISTORY),
    ),
    _group(
        "Booking Management",
        _leaf("Booking", "/booking", Capability.BOOKINGS),
        _leaf("Guests", "/guest", Capability.GUESTS),
    ),
    _group(
        "Customer Requests",
        _leaf("Housekeeping Request", "/hp-request", Capability.HOUSEKEEPING_REQUESTS),
        _leaf("Service Request", "/service-request", Capability.SERVICE_REQUESTS),
    ),
    _leaf("Bill Management", "/folio", Capability.FOLIOS),
    _leaf("Asset Management", "/asset", Capability.ASSETS),
    _leaf("Service Management", "/services", Capability.SERVICES),
    _group(
        "Inventory Management",
        _leaf("Suppliers", "/supplier", Capability.INVENTORY),
        _leaf("Inventory", "/inventory", Capability.INVENTORY),
        _leaf("Inventory Receipt", "/inventory-receipt", Capability.INVENTORY),
    ),
    _group(
        "Expense Management",
        _leaf("Salary", "/salary", Capability.EXPENSES),
        _leaf("Operating Expense", "/op-expense", Capability.EXPENSES),
    ),
    _leaf("Audit Report", "/audit-report", Capability.AUDIT_REPORTS),
    _leaf("Feedback", "/feedback", Capability.FEEDBACK),
    _group(
        "Housekeeping Schedule",
        _leaf("Housekeeping Schedule", "/housekeeping-schedule", Capability.HOUSEKEEPING_SCHEDULE),
        _leaf("My task", "/my-hp-schedule", Capability.MY_HOUSEKEEPING_TASKS),
    ),
    _group(
        "Maintenance Schedule",
        _leaf("Maintenance Schedule", "/maintenance-schedule", Capability.MAINTENANCE_SCHEDULE),
        _leaf("My task", "/my-mt-schedule", Capability.MY_MAINTENANCE_TASKS),
    ),
    _group(
        "Work Schedule",
        _leaf("Work Schedule", "/work-schedule", Capability.WORK_SCHEDULE),
        _leaf("My schedule", "/my-schedule", Capability.MY_SCHEDULE),
    ),
)


class PermissionChecker:
    """
    Answers visibility and permission questions from ROLE_CAPABILITIES.
    """

    def __init__(self, role_capabilities: Optional[Dict[Role, Set[Capability]]] = None):
        self.role_capabilities = role_capabilities or ROLE_CAPABILITIES

    def get_role_capabilities(self, user_role: str) -> Set[Capability]:
        """
        Get all capabilities for a role.

        Args:
            user_role: The user's role (from UserProfile.role)

        Returns:
            Set of capabilities; empty for unknown roles
        """
        try:
            role_enum = Role(user_role)
        except ValueError:
            # Unknown role, no capabilities
            return set()
        return self.role_capabilities.get(role_enum, set())

    def has_capability(self, user_role: str, capability: Capability) -> bool:
        return capability in self.get_role_capabilities(user_role)

    def visible_menu(self, user_role: str) -> List[NavItem]:
        """
        Filter the navigation tree for a role.

        Groups are kept with only their visible children, and dropped when
        none remain.
        """
        allowed = self.get_role_capabilities(user_role)
        return [item for item in (self._filter(nav, allowed) for nav in NAVIGATION) if item]

    def _filter(self, item: NavItem, allowed: Set[Capability]) -> Optional[NavItem]:
        if item.children:
            children = tuple(c for c in (self._filter(ch, allowed) for ch in item.children) if c)
            if not children:
                return None
            return NavItem(name=item.name, path=item.path, children=children)
        if item.capability is None or item.capability in allowed:
            return item
        return None

    def can_visit(self, user_role: str, path: str) -> bool:
        """True if the role can open the given dashboard path."""
        return any(leaf.path == path for leaf in _leaves(self.visible_menu(user_role)))


def _leaves(items: List[NavItem]) -> List[NavItem]:
    out: List[NavItem] = []
    for item in items:
        if item.children:
            out.extend(_leaves(list(item.children)))
        else:
            out.append(item)
    return out


def admission_error(app_kind: AppKind, user_role: str) -> Optional[str]:
    """
    Check whether a role may log in to the given front-end.

    Returns:
        None if admitted, otherwise the message to show the user
    """
    role_name = getattr(user_role, "value", user_role)
    is_customer = role_name == Role.CUSTOMER.value
    if app_kind == AppKind.STAFF_DASHBOARD and is_customer:
        return f"Access denied for role {role_name}"
    if app_kind == AppKind.CUSTOMER_SITE and not is_customer:
        return f"Access denied for role {role_name}"
    return None


# Global checker instance
_permission_checker = PermissionChecker()


def check_capability(user_role: str, capability: Capability) -> bool:
    """Global helper to check if a role holds a capability."""
    return _permission_checker.has_capability(user_role, capability)


def visible_menu(user_role: str) -> List[NavItem]:
    """Global helper returning the navigation tree filtered for a role."""
    return _permission_checker.visible_menu(user_role)

