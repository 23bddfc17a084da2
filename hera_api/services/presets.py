"""
Entity preset registry.

A preset describes one business entity type as it is stored on the
Sacred Six tables: which dynamic fields it carries (with their smart
codes and UI hints), which relationships it may have, and which roles
may create, edit, delete or view it.

Presets are immutable. ``with_overlay`` and ``with_mixins`` return new
presets, so an industry or tenant can specialise a base preset without
touching the registry.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Literal, Mapping

from ..core.errors import NotFoundError
from .smart_code import is_valid_smart_code

logger = logging.getLogger(__name__)

FieldType = Literal["text", "number", "boolean", "date", "json"]
Cardinality = Literal["one", "many"]
Action = Literal["create", "edit", "delete", "view"]

ALL_ROLES = ("owner", "manager", "receptionist", "staff", "accountant")


class PresetNotFoundError(NotFoundError):
    def __init__(self, entity_type: str):
        super().__init__(f"No preset for entity type '{entity_type}'")
        self.entity_type = entity_type


@dataclass(frozen=True)
class FieldUi:
    label: str
    placeholder: str | None = None
    help_text: str | None = None
    widget: str | None = None
    # Empty means every role sees the field
    roles: tuple[str, ...] = ()
    decimals: int | None = None
    min: float | None = None
    max: float | None = None


@dataclass(frozen=True)
class DynamicFieldDef:
    name: str
    type: FieldType
    smart_code: str
    required: bool = False
    default: Any = None
    ui: FieldUi | None = None

    @property
    def label(self) -> str:
        return self.ui.label if self.ui else self.name


@dataclass(frozen=True)
class RelationshipDef:
    type: str
    smart_code: str
    cardinality: Cardinality = "one"


@dataclass(frozen=True)
class EntityPreset:
    entity_type: str
    smart_code: str
    labels: Mapping[str, str]
    dynamic_fields: tuple[DynamicFieldDef, ...] = ()
    relationships: tuple[RelationshipDef, ...] = ()
    permissions: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def get_field(self, name: str) -> DynamicFieldDef | None:
        for f in self.dynamic_fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["labels"] = dict(self.labels)
        data["permissions"] = {k: list(v) for k, v in self.permissions.items()}
        return data


@dataclass(frozen=True)
class PresetOverlay:
    """Partial preset merged over a base by ``with_overlay``/``with_mixins``."""

    dynamic_fields: tuple[DynamicFieldDef, ...] = ()
    relationships: tuple[RelationshipDef, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)
    permissions: Mapping[str, tuple[str, ...]] = field(default_factory=dict)


# =============================================================================
# Builders
# =============================================================================


def _dyn(
    entity: str,
    name: str,
    type: FieldType,
    label: str,
    *,
    required: bool = False,
    default: Any = None,
    domain: str = "UNIVERSAL",
    **ui: Any,
) -> DynamicFieldDef:
    code = f"HERA.{domain}.{entity}.DYN.{name.upper()}.v1"
    return DynamicFieldDef(
        name=name,
        type=type,
        smart_code=code,
        required=required,
        default=default,
        ui=FieldUi(label=label, **ui),
    )


def _rel(entity: str, rel_type: str, cardinality: Cardinality = "one") -> RelationshipDef:
    return RelationshipDef(
        type=rel_type,
        smart_code=f"HERA.UNIVERSAL.{entity}.REL.{rel_type}.v1",
        cardinality=cardinality,
    )


def _permissions(
    create: tuple[str, ...] = ("owner", "manager"),
    edit: tuple[str, ...] = ("owner", "manager"),
    delete: tuple[str, ...] = ("owner",),
    view: tuple[str, ...] = ALL_ROLES,
) -> dict[str, tuple[str, ...]]:
    return {"create": create, "edit": edit, "delete": delete, "view": view}


def _preset(
    entity_type: str,
    singular: str,
    plural: str,
    fields: list[DynamicFieldDef],
    relationships: list[RelationshipDef] | None = None,
    permissions: dict[str, tuple[str, ...]] | None = None,
) -> EntityPreset:
    return EntityPreset(
        entity_type=entity_type,
        smart_code=f"HERA.UNIVERSAL.{entity_type}.ENTITY.STANDARD.v1",
        labels={"singular": singular, "plural": plural},
        dynamic_fields=tuple(fields),
        relationships=tuple(relationships or ()),
        permissions=permissions or _permissions(),
    )


MONEY = {"widget": "currency", "decimals": 2, "min": 0}

PRODUCT = _preset(
    "PRODUCT",
    "Product",
    "Products",
    [
        _dyn("PRODUCT", "price_market", "number", "Retail price", required=True, **MONEY),
        _dyn("PRODUCT", "price_cost", "number", "Cost price", roles=("owner", "manager", "accountant"), **MONEY),
        _dyn("PRODUCT", "sku", "text", "SKU", placeholder="e.g. SHMP-500"),
        _dyn("PRODUCT", "barcode", "text", "Barcode"),
        _dyn("PRODUCT", "stock_quantity", "number", "Stock on hand", default=0, widget="number", decimals=0, min=0),
        _dyn("PRODUCT", "reorder_level", "number", "Reorder level", default=0, widget="number", decimals=0, min=0),
    ],
    [
        _rel("PRODUCT", "HAS_CATEGORY"),
        _rel("PRODUCT", "HAS_BRAND"),
        _rel("PRODUCT", "SUPPLIED_BY", "many"),
    ],
    _permissions(create=("owner", "manager", "receptionist")),
)

SERVICE = _preset(
    "SERVICE",
    "Service",
    "Services",
    [
        _dyn("SERVICE", "price", "number", "Price", required=True, **MONEY),
        _dyn("SERVICE", "duration_minutes", "number", "Duration (minutes)", required=True, default=30, widget="number", decimals=0, min=5, max=600),
        _dyn("SERVICE", "commission_rate", "number", "Commission rate", roles=("owner", "manager"), widget="percent", decimals=2, min=0, max=1),
        _dyn("SERVICE", "requires_booking", "boolean", "Requires booking", default=True, widget="switch"),
    ],
    [
        _rel("SERVICE", "HAS_CATEGORY"),
        _rel("SERVICE", "PERFORMED_BY", "many"),
        _rel("SERVICE", "USES_PRODUCT", "many"),
    ],
)

CUSTOMER = _preset(
    "CUSTOMER",
    "Customer",
    "Customers",
    [
        _dyn("CUSTOMER", "email", "text", "Email", widget="email", placeholder="name@example.com"),
        _dyn("CUSTOMER", "phone", "text", "Phone", widget="phone"),
        _dyn("CUSTOMER", "birthday", "date", "Birthday", widget="date"),
        _dyn("CUSTOMER", "loyalty_points", "number", "Loyalty points", default=0, widget="number", decimals=0, min=0),
        _dyn("CUSTOMER", "notes", "text", "Notes", widget="textarea", roles=("owner", "manager", "receptionist")),
    ],
    [_rel("CUSTOMER", "MEMBER_OF", "many")],
    _permissions(create=("owner", "manager", "receptionist"), edit=("owner", "manager", "receptionist")),
)

EMPLOYEE = _preset(
    "EMPLOYEE",
    "Employee",
    "Employees",
    [
        _dyn("EMPLOYEE", "email", "text", "Email", required=True, widget="email"),
        _dyn("EMPLOYEE", "phone", "text", "Phone", widget="phone"),
        _dyn("EMPLOYEE", "hire_date", "date", "Hire date", widget="date"),
        _dyn("EMPLOYEE", "hourly_rate", "number", "Hourly rate", roles=("owner", "manager", "accountant"), **MONEY),
        _dyn("EMPLOYEE", "skills", "json", "Skills", widget="tags"),
    ],
    [
        _rel("EMPLOYEE", "HAS_ROLE", "many"),
        _rel("EMPLOYEE", "REPORTS_TO"),
    ],
    _permissions(create=("owner",), edit=("owner", "manager")),
)

APPOINTMENT = _preset(
    "APPOINTMENT",
    "Appointment",
    "Appointments",
    [
        _dyn("APPOINTMENT", "start_time", "date", "Start", required=True, widget="datetime"),
        _dyn("APPOINTMENT", "end_time", "date", "End", required=True, widget="datetime"),
        _dyn("APPOINTMENT", "status", "text", "Status", default="booked", widget="select"),
        _dyn("APPOINTMENT", "deposit_amount", "number", "Deposit", default=0, **MONEY),
        _dyn("APPOINTMENT", "notes", "text", "Notes", widget="textarea"),
    ],
    [
        _rel("APPOINTMENT", "BOOKED_FOR"),
        _rel("APPOINTMENT", "PERFORMED_BY"),
        _rel("APPOINTMENT", "HAS_STATUS"),
    ],
    _permissions(
        create=("owner", "manager", "receptionist", "staff"),
        edit=("owner", "manager", "receptionist", "staff"),
        delete=("owner", "manager"),
    ),
)

VENDOR = _preset(
    "VENDOR",
    "Vendor",
    "Vendors",
    [
        _dyn("VENDOR", "email", "text", "Email", widget="email"),
        _dyn("VENDOR", "phone", "text", "Phone", widget="phone"),
        _dyn("VENDOR", "tax_id", "text", "Tax ID", roles=("owner", "accountant")),
        _dyn("VENDOR", "payment_terms_days", "number", "Payment terms (days)", default=30, widget="number", decimals=0, min=0),
    ],
    [_rel("VENDOR", "SUPPLIER_OF", "many")],
    _permissions(create=("owner", "manager", "accountant"), edit=("owner", "manager", "accountant")),
)

CATEGORY = _preset(
    "CATEGORY",
    "Category",
    "Categories",
    [
        _dyn("CATEGORY", "color", "text", "Color", widget="color"),
        _dyn("CATEGORY", "display_order", "number", "Display order", default=0, widget="number", decimals=0),
    ],
    [_rel("CATEGORY", "PARENT_OF", "many")],
)

BRAND = _preset(
    "BRAND",
    "Brand",
    "Brands",
    [
        _dyn("BRAND", "website", "text", "Website", widget="url"),
        _dyn("BRAND", "logo_url", "text", "Logo", widget="image"),
    ],
)

ROLE = _preset(
    "ROLE",
    "Role",
    "Roles",
    [
        _dyn("ROLE", "permissions", "json", "Permissions", required=True, default=[], widget="permissions"),
        _dyn("ROLE", "rank", "number", "Rank", default=0, widget="number", decimals=0, min=0),
    ],
    permissions=_permissions(create=("owner",), edit=("owner",), delete=("owner",), view=("owner", "manager")),
)

AUDIT_MIXIN = PresetOverlay(
    dynamic_fields=(
        _dyn("MIXIN", "external_ref", "text", "External reference"),
        _dyn("MIXIN", "notes", "text", "Notes", widget="textarea"),
    ),
)

CONTACT_MIXIN = PresetOverlay(
    dynamic_fields=(
        _dyn("MIXIN", "email", "text", "Email", widget="email"),
        _dyn("MIXIN", "phone", "text", "Phone", widget="phone"),
        _dyn("MIXIN", "address", "json", "Address", widget="address"),
    ),
)

PRESETS: dict[str, EntityPreset] = {
    p.entity_type: p
    for p in (PRODUCT, SERVICE, CUSTOMER, EMPLOYEE, APPOINTMENT, VENDOR, CATEGORY, BRAND, ROLE)
}

# Staff is an alias used by some UIs
PRESET_ALIASES = {"STAFF": "EMPLOYEE"}


# =============================================================================
# Lookup
# =============================================================================


def list_presets() -> list[EntityPreset]:
    return list(PRESETS.values())


def get_entity_preset(entity_type: str) -> EntityPreset:
    """Case-insensitive preset lookup."""
    key = (entity_type or "").strip().upper()
    key = PRESET_ALIASES.get(key, key)
    try:
        return PRESETS[key]
    except KeyError:
        raise PresetNotFoundError(entity_type) from None


# =============================================================================
# Composition
# =============================================================================


def _merge_by_key(base: tuple, extra: tuple, key: str, *, extra_wins: bool) -> tuple:
    index = {getattr(item, key): i for i, item in enumerate(base)}
    merged = list(base)
    for item in extra:
        pos = index.get(getattr(item, key))
        if pos is None:
            index[getattr(item, key)] = len(merged)
            merged.append(item)
        elif extra_wins:
            merged[pos] = item
    return tuple(merged)


def with_overlay(preset: EntityPreset, overlay: PresetOverlay | Mapping[str, Any]) -> EntityPreset:
    """
    Return ``preset`` with ``overlay`` merged on top.

    Overlay fields replace base fields of the same name in place and new
    ones are appended. Relationships merge the same way keyed by type.
    Labels and permissions are shallow-merged with the overlay winning.
    """
    if isinstance(overlay, Mapping):
        overlay = PresetOverlay(**overlay)
    return replace(
        preset,
        dynamic_fields=_merge_by_key(preset.dynamic_fields, tuple(overlay.dynamic_fields), "name", extra_wins=True),
        relationships=_merge_by_key(preset.relationships, tuple(overlay.relationships), "type", extra_wins=True),
        labels={**preset.labels, **overlay.labels},
        permissions={**preset.permissions, **overlay.permissions},
    )


def with_mixins(preset: EntityPreset, *mixins: PresetOverlay) -> EntityPreset:
    """
    Return ``preset`` extended by each mixin in order.

    Mixins only add fields and relationships the preset does not already
    define; the preset's own definitions always win.
    """
    fields = preset.dynamic_fields
    relationships = preset.relationships
    for mixin in mixins:
        fields = _merge_by_key(fields, tuple(mixin.dynamic_fields), "name", extra_wins=False)
        relationships = _merge_by_key(relationships, tuple(mixin.relationships), "type", extra_wins=False)
    return replace(preset, dynamic_fields=fields, relationships=relationships)


# =============================================================================
# Values
# =============================================================================


def apply_defaults(preset: EntityPreset, values: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(values)
    for f in preset.dynamic_fields:
        if out.get(f.name) is None and f.default is not None:
            out[f.name] = f.default
    return out


def _type_error(f: DynamicFieldDef, value: Any) -> str | None:
    if f.type == "number":
        if isinstance(value, bool):
            return f"{f.label} must be a number"
        try:
            number = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return f"{f.label} must be a number"
        if not number.is_finite():
            return f"{f.label} must be a finite number"
    elif f.type == "boolean" and not isinstance(value, bool):
        return f"{f.label} must be a boolean"
    elif f.type == "date":
        try:
            datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return f"{f.label} must be a valid date"
    elif f.type == "text" and not isinstance(value, str):
        return f"{f.label} must be text"
    return None


def validate_dynamic_fields(preset: EntityPreset, values: Mapping[str, Any]) -> list[str]:
    """Return human-readable problems; an empty list means the values are valid."""
    errors = []
    for f in preset.dynamic_fields:
        value = values.get(f.name)
        if value is None or value == "":
            if f.required:
                errors.append(f"{f.label} is required")
            continue
        problem = _type_error(f, value)
        if problem:
            errors.append(problem)
        elif f.type == "number" and f.ui is not None:
            number = Decimal(str(value))
            if f.ui.min is not None and number < Decimal(str(f.ui.min)):
                errors.append(f"{f.label} must be at least {f.ui.min}")
            if f.ui.max is not None and number > Decimal(str(f.ui.max)):
                errors.append(f"{f.label} must be at most {f.ui.max}")

    known = {f.name for f in preset.dynamic_fields}
    for name in values:
        if name not in known:
            errors.append(f"{name} is not a field of {preset.entity_type}")
    return errors


def build_dynamic_fields(preset: EntityPreset, values: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Turn ``{field_name: value}`` into dynamic field payloads carrying the preset smart codes."""
    out = []
    for f in preset.dynamic_fields:
        value = values.get(f.name)
        if value is None:
            continue
        out.append(
            {
                "field_name": f.name,
                "field_type": f.type,
                "value": value,
                "smart_code": f.smart_code,
            }
        )
    return out


# =============================================================================
# Roles
# =============================================================================


def fields_for_role(preset: EntityPreset, role: str) -> list[DynamicFieldDef]:
    return [f for f in preset.dynamic_fields if f.ui is None or not f.ui.roles or role in f.ui.roles]


def can(preset: EntityPreset, role: str, action: Action) -> bool:
    return role in preset.permissions.get(action, ())


def invalid_smart_codes(preset: EntityPreset) -> list[str]:
    """Smart codes in ``preset`` that fail the format check."""
    codes = [preset.smart_code]
    codes.extend(f.smart_code for f in preset.dynamic_fields)
    codes.extend(r.smart_code for r in preset.relationships)
    return [c for c in codes if not is_valid_smart_code(c)]
