"""Role-based filtering of the application navigation tree."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from pydantic import BaseModel, Field


class NavItem(BaseModel):
    """One navigation entry. ``roles`` empty or None means visible to everyone."""

    label: str
    href: str | None = None
    icon: str | None = None
    roles: list[str] | None = None
    children: list["NavItem"] = Field(default_factory=list)


def _get(item: Any, key: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def _with_children(item: Any, children: list[Any]) -> Any:
    if isinstance(item, BaseModel):
        return item.model_copy(update={"children": children})
    return {**item, "children": children}


def filter_nav_by_role(items: Sequence[Any], roles: Iterable[str] | None) -> list[Any]:
    """
    Keep items whose ``roles`` is empty/absent or shares a role with ``roles``.

    Order is preserved. Children are filtered recursively; a visible parent
    stays visible even when none of its children do.
    """
    allowed = set(roles or ())
    visible: list[Any] = []
    for item in items:
        item_roles = _get(item, "roles")
        if item_roles and not allowed.intersection(item_roles):
            continue
        children = _get(item, "children")
        if children:
            item = _with_children(item, filter_nav_by_role(children, allowed))
        visible.append(item)
    return visible


DEFAULT_NAVIGATION: list[NavItem] = [
    NavItem(label="Dashboard", href="/dashboard", icon="home"),
    NavItem(
        label="Sales",
        icon="shopping-cart",
        roles=["owner", "manager", "receptionist", "sales"],
        children=[
            NavItem(label="Point of Sale", href="/pos"),
            NavItem(label="Transactions", href="/transactions"),
            NavItem(label="Refunds", href="/transactions/refunds", roles=["owner", "manager"]),
        ],
    ),
    NavItem(
        label="Appointments",
        href="/appointments",
        icon="calendar",
        roles=["owner", "manager", "receptionist", "staff"],
    ),
    NavItem(
        label="Catalog",
        icon="package",
        roles=["owner", "manager", "receptionist"],
        children=[
            NavItem(label="Products", href="/entities/product"),
            NavItem(label="Services", href="/entities/service"),
            NavItem(label="Categories", href="/entities/category"),
            NavItem(label="Brands", href="/entities/brand"),
        ],
    ),
    NavItem(label="Customers", href="/entities/customer", icon="users"),
    NavItem(
        label="Finance",
        icon="landmark",
        roles=["owner", "accountant"],
        children=[
            NavItem(label="General Ledger", href="/finance/gl"),
            NavItem(label="Vendors", href="/entities/vendor"),
        ],
    ),
    NavItem(
        label="Settings",
        href="/settings",
        icon="settings",
        roles=["owner"],
        children=[
            NavItem(label="Staff", href="/entities/employee"),
            NavItem(label="Roles", href="/entities/role"),
        ],
    ),
]
