"""
HERA Universal API - Request Models

Pydantic models for every request body. Smart codes are format-checked
at parse time, entity and transaction types are upper-cased, and money
is carried as Decimal and serialised to JSON numbers for the RPC layer.

Each body knows how to turn itself into the named parameters of the RPC
it feeds (``to_rpc_params``).

Usage:
    body = EntityUpsertBody.model_validate(request_json)
    params = body.to_rpc_params(org_id, actor)
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)

from ..services.smart_code import validate_smart_code

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

DynamicFieldType = Literal["text", "number", "boolean", "date", "json"]

# Column that carries the value for each dynamic field type
VALUE_COLUMNS: Dict[str, str] = {
    "text": "field_value_text",
    "number": "field_value_number",
    "boolean": "field_value_boolean",
    "date": "field_value_date",
    "json": "field_value_json",
}


def _check_smart_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    violations = validate_smart_code(value)
    if violations:
        raise ValueError(violations[0].message)
    return value


def _upper(value: Optional[str]) -> Optional[str]:
    return value.strip().upper() if isinstance(value, str) else value


def _str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


# =============================================================================
# Base Configuration
# =============================================================================


class FlexibleModel(BaseModel):
    """Base model that ignores unknown keys sent by older clients."""

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        populate_by_name=True,
    )


class OrgScopedModel(FlexibleModel):
    """Body that may carry the organization id (else X-Organization-Id is used)."""

    organization_id: Optional[UUID] = Field(None, description="Tenant organization")


# =============================================================================
# Dynamic Data
# =============================================================================


class DynamicField(FlexibleModel):
    """One dynamic (EAV) field value attached to an entity."""

    field_name: str = Field(..., min_length=1, max_length=100)
    field_type: DynamicFieldType = Field("text", description="Storage type of the value")
    value: Any = Field(None, description="Field value; stored in the column for field_type")
    smart_code: str = Field(..., description="Smart code describing the field")

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)

    @model_validator(mode="after")
    def value_matches_type(self) -> "DynamicField":
        v = self.value
        if v is None:
            return self
        if self.field_type == "number" and (isinstance(v, bool) or not isinstance(v, (int, float, Decimal))):
            raise ValueError(f"{self.field_name} must be a number")
        if self.field_type == "boolean" and not isinstance(v, bool):
            raise ValueError(f"{self.field_name} must be a boolean")
        if self.field_type == "date":
            if not isinstance(v, (str, date)):
                raise ValueError(f"{self.field_name} must be a valid date")
            if isinstance(v, str):
                try:
                    datetime.fromisoformat(v.replace("Z", "+00:00"))
                except ValueError:
                    raise ValueError(f"{self.field_name} must be a valid date") from None
        if self.field_type == "text" and not isinstance(v, str):
            raise ValueError(f"{self.field_name} must be text")
        return self

    def value_columns(self) -> Dict[str, Any]:
        value = self.value
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        return {VALUE_COLUMNS[self.field_type]: value}

    def to_rpc_item(self) -> Dict[str, Any]:
        return {
            "field_name": self.field_name,
            "field_type": self.field_type,
            "smart_code": self.smart_code,
            **self.value_columns(),
        }


class DynamicDataSetBody(OrgScopedModel):
    """Set one or many dynamic fields on a single entity."""

    entity_id: UUID
    fields: List[DynamicField] = Field(..., min_length=1)

    @field_validator("fields")
    @classmethod
    def unique_names(cls, v: List[DynamicField]) -> List[DynamicField]:
        names = [f.field_name for f in v]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate field_name: {', '.join(dupes)}")
        return v

    def to_rpc_params(self, organization_id: str, actor: Optional[str]) -> Dict[str, Any]:
        if len(self.fields) == 1:
            f = self.fields[0]
            params = {
                "p_organization_id": organization_id,
                "p_entity_id": str(self.entity_id),
                "p_field_name": f.field_name,
                "p_field_type": f.field_type,
                "p_smart_code": f.smart_code,
                "p_actor_user_id": actor,
            }
            params.update({f"p_{k}": v for k, v in f.value_columns().items()})
            return params
        return {
            "p_organization_id": organization_id,
            "p_entity_id": str(self.entity_id),
            "p_items": [f.to_rpc_item() for f in self.fields],
            "p_actor_user_id": actor,
        }


# =============================================================================
# Entities
# =============================================================================


class EntityUpsertBody(OrgScopedModel):
    """Create or update a core entity (entity_id present means update)."""

    entity_id: Optional[UUID] = None
    entity_type: str = Field(..., min_length=1, max_length=100)
    entity_name: str = Field(..., min_length=1, max_length=500)
    smart_code: str
    entity_code: Optional[str] = Field(None, max_length=100)
    entity_description: Optional[str] = None
    parent_entity_id: Optional[UUID] = None
    status: Optional[str] = None
    tags: Optional[List[str]] = None
    smart_code_status: Optional[str] = None
    business_rules: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    ai_confidence: Optional[float] = Field(None, ge=0, le=1)
    ai_classification: Optional[str] = None
    ai_insights: Optional[Dict[str, Any]] = None

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)

    @field_validator("entity_type")
    @classmethod
    def upper_entity_type(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)

    def to_rpc_params(self, organization_id: str, actor: Optional[str]) -> Dict[str, Any]:
        return {
            "p_organization_id": organization_id,
            "p_entity_type": self.entity_type,
            "p_entity_name": self.entity_name,
            "p_smart_code": self.smart_code,
            "p_entity_id": _str(self.entity_id),
            "p_entity_code": self.entity_code,
            "p_entity_description": self.entity_description,
            "p_parent_entity_id": _str(self.parent_entity_id),
            "p_status": self.status,
            "p_tags": self.tags,
            "p_smart_code_status": self.smart_code_status,
            "p_business_rules": self.business_rules,
            "p_metadata": self.metadata,
            "p_ai_confidence": self.ai_confidence,
            "p_ai_classification": self.ai_classification,
            "p_ai_insights": self.ai_insights,
            "p_actor_user_id": actor,
        }


# =============================================================================
# Relationships
# =============================================================================


class RelationshipItem(FlexibleModel):
    """A typed, directed edge between two entities."""

    from_entity_id: UUID
    to_entity_id: UUID
    relationship_type: str = Field(..., min_length=1, max_length=100)
    smart_code: str
    relationship_direction: Literal["forward", "reverse", "bidirectional"] = "forward"
    relationship_strength: float = Field(1.0, ge=0, le=1)
    relationship_data: Optional[Dict[str, Any]] = None
    smart_code_status: str = "DRAFT"
    is_active: bool = True
    effective_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)

    @field_validator("relationship_type")
    @classmethod
    def upper_relationship_type(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)

    @model_validator(mode="after")
    def dates_ordered(self) -> "RelationshipItem":
        if self.effective_date and self.expiration_date and self.expiration_date < self.effective_date:
            raise ValueError("expiration_date must not be before effective_date")
        return self

    def to_rpc_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class RelationshipUpsertBody(RelationshipItem):
    organization_id: Optional[UUID] = None

    def to_rpc_params(self, organization_id: str, actor: Optional[str]) -> Dict[str, Any]:
        row = self.to_rpc_row()
        row.pop("organization_id", None)
        params = {f"p_{k}": v for k, v in row.items()}
        params["p_organization_id"] = organization_id
        params["p_actor_user_id"] = actor
        return params


class RelationshipBatchBody(OrgScopedModel):
    relationships: List[RelationshipItem] = Field(..., min_length=1)

    def to_rpc_params(self, organization_id: str, actor: Optional[str]) -> Dict[str, Any]:
        return {
            "p_organization_id": organization_id,
            "p_rows": [r.to_rpc_row() for r in self.relationships],
            "p_actor_user_id": actor,
        }


# =============================================================================
# Transactions
# =============================================================================


class TransactionLine(FlexibleModel):
    line_number: Optional[int] = Field(None, ge=1)
    line_type: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    quantity: Money = Decimal(1)
    unit_amount: Optional[Money] = None
    line_amount: Money
    smart_code: str
    entity_id: Optional[UUID] = None
    line_data: Optional[Dict[str, Any]] = None

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)

    @field_validator("line_type")
    @classmethod
    def upper_line_type(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)


class TransactionEmitBody(OrgScopedModel):
    """Transaction header with its lines."""

    transaction_type: str = Field(..., min_length=1, max_length=100)
    smart_code: str
    transaction_date: Optional[datetime] = None
    transaction_code: Optional[str] = None
    source_entity_id: Optional[UUID] = None
    target_entity_id: Optional[UUID] = None
    total_amount: Optional[Money] = None
    transaction_currency_code: Optional[str] = Field(None, min_length=3, max_length=3)
    transaction_status: Optional[str] = None
    business_context: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    lines: List[TransactionLine] = Field(default_factory=list)

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)

    @field_validator("transaction_type")
    @classmethod
    def upper_transaction_type(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)

    @field_validator("transaction_currency_code")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)

    @model_validator(mode="after")
    def number_lines(self) -> "TransactionEmitBody":
        for index, line in enumerate(self.lines, start=1):
            if line.line_number is None:
                line.line_number = index
        return self

    def header(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json", exclude={"lines", "organization_id"}, exclude_none=True)
        return data

    def lines_json(self) -> List[Dict[str, Any]]:
        return [line.model_dump(mode="json", exclude_none=True) for line in self.lines]

    def guardrail_payload(self) -> Dict[str, Any]:
        return {**self.header(), "lines": self.lines_json()}

    def to_rpc_params(self, organization_id: str, actor: Optional[str]) -> Dict[str, Any]:
        params = {f"p_{k}": v for k, v in self.header().items()}
        params["p_organization_id"] = organization_id
        params["p_lines"] = self.lines_json()
        params["p_actor_user_id"] = actor
        return params


class TransactionBatchBody(OrgScopedModel):
    transactions: List[TransactionEmitBody] = Field(..., min_length=1)

    def to_rpc_params(self, organization_id: str, actor: Optional[str]) -> Dict[str, Any]:
        return {
            "p_organization_id": organization_id,
            "p_transactions": [t.guardrail_payload() for t in self.transactions],
            "p_actor_user_id": actor,
        }


class ReverseTransactionBody(OrgScopedModel):
    reason: str = Field(..., min_length=1, max_length=500)
    reversal_date: Optional[datetime] = None


# =============================================================================
# Point of Sale
# =============================================================================


class PosCartItem(FlexibleModel):
    product_id: UUID
    name: Optional[str] = None
    qty: Decimal = Field(..., gt=0)
    price: Decimal = Field(..., ge=0)


class PosCheckoutBody(OrgScopedModel):
    items: List[PosCartItem] = Field(..., min_length=1)
    discount: Decimal = Field(Decimal(0), ge=0)
    tax: Decimal = Field(Decimal(0), ge=0)
    paid: Decimal = Field(Decimal(0), ge=0)
    customer_id: Optional[UUID] = None
    staff_id: Optional[UUID] = None
    branch_id: Optional[UUID] = None
    payment_method: str = Field("cash", min_length=1, max_length=50)
    currency: str = Field("USD", min_length=3, max_length=3)


# =============================================================================
# v2 CRUD
# =============================================================================


class DynamicValueV2(FlexibleModel):
    field_type: DynamicFieldType = "text"
    value: Any = None
    smart_code: str

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)


class RelationshipV2(FlexibleModel):
    to_entity_id: UUID
    relationship_type: str = Field(..., min_length=1, max_length=100)
    smart_code: str
    relationship_data: Optional[Dict[str, Any]] = None

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)

    @field_validator("relationship_type")
    @classmethod
    def upper_relationship_type(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)


class EntityV2(FlexibleModel):
    entity_id: Optional[UUID] = None
    entity_type: Optional[str] = Field(None, max_length=100)
    entity_name: Optional[str] = Field(None, max_length=500)
    smart_code: Optional[str] = None
    entity_code: Optional[str] = None
    entity_description: Optional[str] = None
    parent_entity_id: Optional[UUID] = None
    status: Optional[str] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None
    business_rules: Optional[Dict[str, Any]] = None

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)

    @field_validator("entity_type")
    @classmethod
    def upper_entity_type(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)


class EntityCrudV2Body(OrgScopedModel):
    """Entity with its dynamic fields and relationships, written in one RPC call."""

    entity: EntityV2
    dynamic: Dict[str, DynamicValueV2] = Field(default_factory=dict)
    relationships: List[RelationshipV2] = Field(default_factory=list)
    options: Dict[str, Any] = Field(default_factory=dict)

    def dynamic_rpc(self) -> Dict[str, Dict[str, Any]]:
        out = {}
        for name, field in self.dynamic.items():
            value = field.value
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            out[name] = {
                "field_type": field.field_type,
                VALUE_COLUMNS[field.field_type]: value,
                "smart_code": field.smart_code,
            }
        return out

    def guardrail_payload(self) -> Dict[str, Any]:
        payload = self.entity.model_dump(mode="json", exclude_none=True)
        payload["dynamic_fields"] = {
            name: {"field_type": f.field_type, "value": f.value, "smart_code": f.smart_code}
            for name, f in self.dynamic.items()
        }
        payload["relationships"] = [r.model_dump(mode="json") for r in self.relationships]
        return payload

    def to_rpc_params(self, action: str, organization_id: str, actor: str) -> Dict[str, Any]:
        return {
            "p_action": action,
            "p_actor_user_id": actor,
            "p_organization_id": organization_id,
            "p_entity": self.entity.model_dump(mode="json", exclude_none=True),
            "p_dynamic": self.dynamic_rpc(),
            "p_relationships": [r.model_dump(mode="json", exclude_none=True) for r in self.relationships],
            "p_options": self.options,
        }


class TransactionUpdateV2Body(OrgScopedModel):
    """
    Patch a transaction header, optionally replacing all of its lines.

    ``smart_code`` is the header smart code the database checks the
    update against.
    """

    transaction_id: UUID
    smart_code: Optional[str] = None
    patch: Dict[str, Any] = Field(default_factory=dict)
    lines: Optional[List[TransactionLine]] = None

    @field_validator("smart_code")
    @classmethod
    def check_smart_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_smart_code(v)

    @field_validator("patch")
    @classmethod
    def no_identity_changes(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        locked = {"organization_id", "transaction_id", "id"} & set(v)
        if locked:
            raise ValueError(f"cannot change {', '.join(sorted(locked))}")
        if "smart_code" in v:
            _check_smart_code(v["smart_code"])
        if "transaction_type" in v:
            v = {**v, "transaction_type": _upper(v["transaction_type"])}
        return v

    @model_validator(mode="after")
    def has_changes(self) -> "TransactionUpdateV2Body":
        if not self.patch and not self.lines:
            raise ValueError("patch or lines is required")
        if self.lines:
            for index, line in enumerate(self.lines, start=1):
                if line.line_number is None:
                    line.line_number = index
        return self

    def to_rpc_payload(self, organization_id: str) -> Dict[str, Any]:
        patch = dict(self.patch)
        payload: Dict[str, Any] = {
            "transaction_id": str(self.transaction_id),
            "header": {
                "organization_id": organization_id,
                "smart_code": self.smart_code or patch.get("smart_code"),
            },
        }
        if self.lines:
            payload["lines"] = [line.model_dump(mode="json", exclude_none=True) for line in self.lines]
            patch["lines_mode"] = "REPLACE"
        payload["patch"] = patch
        return payload


class GuardrailValidateBody(OrgScopedModel):
    """Dry-run request for the guardrail checks."""

    kind: Literal["entity", "transaction", "relationship", "dynamic_fields"]
    action: str = "CREATE"
    payload: Dict[str, Any]
