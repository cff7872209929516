"""
Role/action policy table and restaurant-scoped access checks.

Every service entry point calls `authorize` once for its action, then
`ensure_restaurant_access` for the restaurant it touches. Roles are never
compared inline inside the services.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional
from uuid import UUID

from app.core.errors import Forbidden, NotFound
from app.models.restaurant import Restaurant, StaffAssignment


class Role(str, Enum):
    ADMIN = "ADMIN"
    RESTAURANT_OWNER = "RESTAURANT_OWNER"
    RESTAURANT_STAFF = "RESTAURANT_STAFF"
    CUSTOMER = "CUSTOMER"
    DRIVER = "DRIVER"


class Action(str, Enum):
    RESTAURANT_CREATE = "restaurant.create"
    RESTAURANT_ASSIGN_STAFF = "restaurant.assign_staff"
    TABLE_CREATE = "table.create"
    TABLE_UPDATE = "table.update"
    TABLE_DELETE = "table.delete"
    RESERVATION_CREATE = "reservation.create"
    RESERVATION_VIEW = "reservation.view"
    RESERVATION_UPDATE = "reservation.update"
    RESERVATION_UPDATE_STATUS = "reservation.update_status"
    RESERVATION_CANCEL = "reservation.cancel"
    RESERVATION_REPORT = "reservation.report"
    SUPPLIER_MANAGE = "supplier.manage"
    SUPPLIER_VIEW = "supplier.view"
    INVENTORY_VIEW = "inventory.view"
    INVENTORY_WRITE = "inventory.write"
    INVENTORY_DELETE = "inventory.delete"
    INVENTORY_REPORT = "inventory.report"
    INVENTORY_CROSS_RESTAURANT_TRANSFER = "inventory.cross_restaurant_transfer"


_MANAGERS = frozenset({Role.ADMIN, Role.RESTAURANT_OWNER})
_RESTAURANT_TEAM = frozenset({Role.ADMIN, Role.RESTAURANT_OWNER, Role.RESTAURANT_STAFF})
_GUESTS_AND_TEAM = _RESTAURANT_TEAM | {Role.CUSTOMER}
# Roles that only ever act on their own records
SELF_SCOPED_ROLES = frozenset({Role.CUSTOMER})

POLICY: Dict[Action, FrozenSet[Role]] = {
    Action.RESTAURANT_CREATE: _MANAGERS,
    Action.RESTAURANT_ASSIGN_STAFF: _MANAGERS,
    Action.TABLE_CREATE: _MANAGERS,
    Action.TABLE_UPDATE: _RESTAURANT_TEAM,
    Action.TABLE_DELETE: _MANAGERS,
    Action.RESERVATION_CREATE: _GUESTS_AND_TEAM,
    Action.RESERVATION_VIEW: _GUESTS_AND_TEAM,
    Action.RESERVATION_UPDATE: _GUESTS_AND_TEAM,
    Action.RESERVATION_UPDATE_STATUS: _RESTAURANT_TEAM,
    Action.RESERVATION_CANCEL: _GUESTS_AND_TEAM,
    Action.RESERVATION_REPORT: _RESTAURANT_TEAM,
    Action.SUPPLIER_MANAGE: _MANAGERS,
    Action.SUPPLIER_VIEW: _RESTAURANT_TEAM,
    Action.INVENTORY_VIEW: _RESTAURANT_TEAM,
    Action.INVENTORY_WRITE: _RESTAURANT_TEAM,
    Action.INVENTORY_DELETE: _MANAGERS,
    Action.INVENTORY_REPORT: _RESTAURANT_TEAM,
    Action.INVENTORY_CROSS_RESTAURANT_TRANSFER: frozenset({Role.ADMIN}),
}


@dataclass(frozen=True)
class Actor:
    """The caller as resolved by the external auth layer."""
    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def is_allowed(actor: Actor, action: Action) -> bool:
    return actor.role in POLICY.get(action, frozenset())


def authorize(actor: Actor, action: Action) -> None:
    if not is_allowed(actor, action):
        raise Forbidden(f"Role {actor.role.value} is not allowed to perform {action.value}")


def is_self_scoped(actor: Actor) -> bool:
    return actor.role in SELF_SCOPED_ROLES


async def _is_member(actor: Actor, restaurant: Restaurant, conn: Any = None) -> bool:
    if actor.role == Role.RESTAURANT_OWNER:
        return restaurant.owner_id == actor.id
    if actor.role == Role.RESTAURANT_STAFF:
        return await StaffAssignment.filter(
            restaurant_id=restaurant.id, user_id=actor.id
        ).using_db(conn).exists()
    return False


async def ensure_restaurant_access(actor: Actor, restaurant_id: UUID, conn: Any = None) -> Restaurant:
    """
    Loads the restaurant and checks the actor may act within it.
    Admins pass for any restaurant; owners and staff only for their own.
    """
    restaurant = await Restaurant.filter(id=restaurant_id).using_db(conn).first()
    if not restaurant:
        raise NotFound(f"Restaurant with ID {restaurant_id} not found")

    if actor.is_admin:
        return restaurant

    if not await _is_member(actor, restaurant, conn):
        raise Forbidden("Access to this restaurant denied")
    return restaurant


async def accessible_restaurant_ids(actor: Actor, conn: Any = None) -> Optional[List[UUID]]:
    """Restaurants an owner or staff member works for; None means unrestricted (admin)."""
    if actor.is_admin:
        return None
    if actor.role == Role.RESTAURANT_OWNER:
        return list(await Restaurant.filter(owner_id=actor.id).using_db(conn).values_list("id", flat=True))
    if actor.role == Role.RESTAURANT_STAFF:
        return list(await StaffAssignment.filter(user_id=actor.id).using_db(conn).values_list("restaurant_id", flat=True))
    return []
