"""
Guardrail checks that run before any RPC call.

Each ``check_*`` function takes the plain-dict form of a request payload
and returns a GuardrailResult. Routes call ``enforce`` on the result,
which raises GuardrailViolationError (HTTP 400) when any ERROR-severity
violation is present and otherwise hands the warnings back for the
response envelope.
"""

from __future__ import annotations

import json
import logging
import re
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping
from uuid import UUID

from ..core.errors import GuardrailViolationError, OrganizationError
from .smart_code import validate_smart_code
from .violations import GuardrailResult, Violation, error, warning

logger = logging.getLogger(__name__)

NULL_UUID = "00000000-0000-0000-0000-000000000000"

ENTITY_ACTIONS = ("CREATE", "READ", "UPDATE", "DELETE")
TRANSACTION_ACTIONS = ("CREATE", "READ", "QUERY", "UPDATE", "DELETE", "REVERSE")

# Business attributes that belong in dynamic data, not in metadata
BUSINESS_METADATA_KEYS = ("price", "quantity", "description", "category", "status", "type")

DYNAMIC_FIELD_TYPES = ("text", "number", "boolean", "date", "json")

STANDARD_RELATIONSHIP_TYPES = frozenset(
    {
        "HAS_STATUS",
        "PARENT_OF",
        "MEMBER_OF",
        "CUSTOMER_OF",
        "SUPPLIER_OF",
        "OWNS",
        "ASSIGNED_TO",
        "HAS_CATEGORY",
        "HAS_BRAND",
        "HAS_ROLE",
        "SUPPLIED_BY",
        "REPORTS_TO",
        "BOOKED_FOR",
        "PERFORMED_BY",
        "USES_PRODUCT",
    }
)

# Transaction types that must name the branch they happened at
BRANCH_SCOPED_TXN_RE = re.compile(r"^(POS_|APPT_|INVENTORY_|SALON_|SERVICE_)")

# Tender lines settle the total rather than make it up
TENDER_LINE_TYPES = frozenset({"PAYMENT", "CHANGE", "TENDER"})

GL_SIDES = ("DR", "CR")
BALANCE_TOLERANCE = Decimal("0.01")

MAX_PAYLOAD_BYTES = 1024 * 1024
MAX_LINES_BEFORE_WARNING = 1000
MAX_DYNAMIC_FIELDS_BEFORE_WARNING = 100
MAX_TEXT_LENGTH_BEFORE_WARNING = 10000

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# =============================================================================
# Helpers
# =============================================================================


def _parse_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_list(value: Any) -> list[Any]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _dynamic_fields_as_list(fields: Any) -> list[Any]:
    """
    Accept either a list of field dicts or a ``{name: field}`` mapping.

    Entries that are not mappings are passed through as-is so the caller
    can report them.
    """
    if not fields:
        return []
    if isinstance(fields, Mapping):
        out = []
        for name, raw in fields.items():
            item = dict(raw) if isinstance(raw, Mapping) else {"value": raw}
            item.setdefault("field_name", name)
            out.append(item)
        return out
    return [dict(f) if isinstance(f, Mapping) else f for f in _as_list(fields)]


def _field_value(field: Mapping[str, Any]) -> Any:
    if "value" in field and field["value"] is not None:
        return field["value"]
    for key in (
        "field_value_text",
        "field_value_number",
        "field_value_boolean",
        "field_value_date",
        "field_value_json",
        "field_value",
    ):
        if field.get(key) is not None:
            return field[key]
    return None


# =============================================================================
# Organization scoping
# =============================================================================


def validate_organization_id(
    org_id: Any,
    *,
    platform_org_id: str = NULL_UUID,
    allow_platform: bool = False,
) -> list[Violation]:
    if _is_blank(org_id):
        return [error("ORG-FILTER-REQUIRED", "organization_id is required")]

    parsed = _parse_uuid(org_id)
    if parsed is None:
        return [error("ORG-ID-INVALID", "organization_id must be a UUID", value=str(org_id))]

    if not allow_platform and str(parsed) == str(platform_org_id).lower():
        return [
            error(
                "ORG-PLATFORM-FORBIDDEN",
                "Business operations may not target the platform organization",
            )
        ]
    return []


def resolve_organization_id(
    payload_org: Any,
    header_org: Any = None,
    *,
    platform_org_id: str = NULL_UUID,
) -> str:
    """
    Return the effective organization id for a request.

    The body or query value wins; the X-Organization-Id header is the
    fallback. When both are present they must agree.

    Raises:
        OrganizationError: missing, malformed, mismatched or platform org
    """
    candidates = [v for v in (payload_org, header_org) if not _is_blank(v)]
    if not candidates:
        raise OrganizationError("organization_id is required", code="ORG-FILTER-REQUIRED")

    for candidate in candidates:
        violations = validate_organization_id(candidate, platform_org_id=platform_org_id)
        if violations:
            raise OrganizationError(violations[0].message, code=violations[0].code)

    resolved = [str(_parse_uuid(c)) for c in candidates]
    if len(set(resolved)) > 1:
        raise OrganizationError(
            "organization_id in the request does not match X-Organization-Id",
            code="ORG-MISMATCH",
        )
    return resolved[0]


# =============================================================================
# Payload checks
# =============================================================================


def check_payload_size(payload: Any, limit: int = MAX_PAYLOAD_BYTES) -> GuardrailResult:
    result = GuardrailResult(rules_checked=["payload_size"])
    size = len(json.dumps(payload, default=str).encode("utf-8"))
    if size > limit:
        result.add(
            error(
                "PAYLOAD-TOO-LARGE",
                f"Payload is {size} bytes; the limit is {limit}",
                size=size,
                limit=limit,
            )
        )
    return result


def _check_field_value(field: Mapping[str, Any], name: str) -> list[Violation]:
    field_type = str(field.get("field_type") or "text").lower()
    value = _field_value(field)
    found: list[Violation] = []

    if field_type not in DYNAMIC_FIELD_TYPES:
        return [
            error(
                "DYNAMIC-FIELD-TYPE-INVALID",
                f"Dynamic field '{name}' has unknown type '{field_type}'",
                field=name,
            )
        ]
    if value is None:
        return []

    mismatch = False
    if field_type == "number":
        mismatch = _to_decimal(value) is None
    elif field_type == "boolean":
        mismatch = not isinstance(value, bool)
    elif field_type == "date":
        if isinstance(value, (date, datetime)):
            mismatch = False
        elif isinstance(value, str):
            try:
                datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                mismatch = True
        else:
            mismatch = True
    elif field_type == "text":
        mismatch = not isinstance(value, str)

    if mismatch:
        found.append(
            error(
                "DYNAMIC-FIELD-TYPE-MISMATCH",
                f"Dynamic field '{name}' must be a valid {field_type}",
                field=name,
            )
        )
        return found

    lowered = name.lower()
    if isinstance(value, str):
        if "email" in lowered and not _EMAIL_RE.match(value):
            found.append(
                error("FIELD-FORMAT-EMAIL", f"Dynamic field '{name}' is not a valid email", field=name)
            )
        if "phone" in lowered and len(re.sub(r"\D", "", value)) < 10:
            found.append(
                warning("FIELD-FORMAT-PHONE", f"Dynamic field '{name}' looks too short for a phone number", field=name)
            )
        if lowered in ("currency", "currency_code") and not re.fullmatch(r"[A-Z]{3}", value):
            found.append(
                error("FIELD-FORMAT-CURRENCY", f"Dynamic field '{name}' must be a 3-letter ISO currency code", field=name)
            )
        if len(value) > MAX_TEXT_LENGTH_BEFORE_WARNING:
            found.append(
                warning("PERF-LARGE-TEXT", f"Dynamic field '{name}' exceeds {MAX_TEXT_LENGTH_BEFORE_WARNING} characters", field=name)
            )
    return found


def check_dynamic_fields(fields: Any) -> GuardrailResult:
    result = GuardrailResult(rules_checked=["dynamic_fields"])
    items = _dynamic_fields_as_list(fields)

    if len(items) > MAX_DYNAMIC_FIELDS_BEFORE_WARNING:
        result.add(
            warning(
                "PERF-MANY-DYNAMIC-FIELDS",
                f"{len(items)} dynamic fields in one request",
                count=len(items),
            )
        )

    for index, field in enumerate(items):
        if not isinstance(field, Mapping):
            result.add(
                error(
                    "DYNAMIC-FIELD-INVALID",
                    f"dynamic_fields[{index}] must be an object",
                    index=index,
                )
            )
            continue
        name = field.get("field_name")
        if _is_blank(name):
            result.add(error("DYNAMIC-FIELD-NAME-REQUIRED", f"dynamic_fields[{index}].field_name is required"))
            continue
        name = str(name)
        result.extend(
            validate_smart_code(
                field.get("smart_code"), label=f"dynamic field '{name}' smart_code"
            )
        )
        if _field_value(field) is None:
            result.add(
                warning(
                    "DYNAMIC-FIELD-VALUE-REQUIRED",
                    f"Dynamic field '{name}' has no value",
                    field=name,
                )
            )
        result.extend(_check_field_value(field, name))
    return result


def check_relationship_payload(
    rel: Mapping[str, Any],
    *,
    organization_id: str | None = None,
    require_from: bool = True,
) -> GuardrailResult:
    result = GuardrailResult(rules_checked=["relationship"])

    if require_from and _is_blank(rel.get("from_entity_id")):
        result.add(error("RELATIONSHIP-FROM-ENTITY-REQUIRED", "from_entity_id is required"))
    if _is_blank(rel.get("to_entity_id")):
        result.add(error("RELATIONSHIP-TO-ENTITY-REQUIRED", "to_entity_id is required"))

    rel_type = rel.get("relationship_type")
    if _is_blank(rel_type):
        result.add(error("RELATIONSHIP-TYPE-REQUIRED", "relationship_type is required"))
    elif str(rel_type).upper() not in STANDARD_RELATIONSHIP_TYPES:
        result.add(
            warning(
                "RELATIONSHIP-TYPE-NONSTANDARD",
                f"relationship_type '{rel_type}' is not a standard type",
                relationship_type=rel_type,
            )
        )

    for violation in validate_smart_code(rel.get("smart_code"), label="relationship smart_code"):
        code = "RELATIONSHIP-SMARTCODE-REQUIRED" if violation.code == "SMARTCODE-REQUIRED" else violation.code
        result.add(Violation(code, violation.message, violation.severity, violation.context))

    from_id = rel.get("from_entity_id")
    if not _is_blank(from_id) and str(from_id) == str(rel.get("to_entity_id")):
        result.add(warning("RELATIONSHIP-SELF-REFERENCE", "Relationship points an entity at itself"))

    rel_org = rel.get("organization_id")
    if organization_id and not _is_blank(rel_org):
        if str(_parse_uuid(rel_org) or rel_org) != str(organization_id):
            result.add(
                error(
                    "ORG-CROSS-BOUNDARY",
                    "Relationship organization differs from the request organization",
                )
            )

    strength = rel.get("relationship_strength")
    if strength is not None:
        dec = _to_decimal(strength)
        if dec is None or dec < 0 or dec > 1:
            result.add(
                error(
                    "RELATIONSHIP-STRENGTH-INVALID",
                    "relationship_strength must be between 0 and 1",
                )
            )
    return result


def check_entity_payload(
    payload: Mapping[str, Any],
    action: str = "CREATE",
    *,
    organization_id: str | None = None,
) -> GuardrailResult:
    """
    Entity create/update/delete checks.

    CREATE needs entity_type, entity_name and a smart code. UPDATE needs
    entity_id and a smart code. DELETE needs entity_id. Dynamic fields
    and inline relationships are checked for every write.
    """
    action = action.upper()
    result = GuardrailResult(rules_checked=["entity"])

    if action not in ENTITY_ACTIONS:
        result.add(error("ACTION-INVALID", f"Unsupported action '{action}'"))
        return result

    if action in ("UPDATE", "DELETE") and _is_blank(payload.get("entity_id")):
        result.add(error("ENTITY-ID-REQUIRED", f"entity_id is required for {action}"))

    if action == "CREATE":
        if _is_blank(payload.get("entity_type")):
            result.add(error("ENTITY-TYPE-REQUIRED", "entity_type is required"))
        if _is_blank(payload.get("entity_name")):
            result.add(error("ENTITY-NAME-REQUIRED", "entity_name is required"))

    if action in ("CREATE", "UPDATE"):
        result.extend(
            validate_smart_code(payload.get("smart_code"), required=action == "CREATE")
        )

    metadata = payload.get("metadata") or {}
    if isinstance(metadata, Mapping):
        for key in BUSINESS_METADATA_KEYS:
            if key in metadata:
                result.add(
                    warning(
                        "FIELD-PLACEMENT-WARNING",
                        f"metadata.{key} looks like business data; store it as a dynamic field",
                        key=key,
                    )
                )

    entity_type = str(payload.get("entity_type") or "").upper()
    if action == "CREATE" and entity_type == "GL_ACCOUNT" and _is_blank(payload.get("entity_code")):
        result.add(error("ENTITY-CODE-REQUIRED", "GL accounts require an entity_code"))

    fields = payload.get("dynamic_fields") or payload.get("dynamic") or []
    if action in ("CREATE", "UPDATE"):
        result.merge(check_dynamic_fields(fields))
        if action == "CREATE" and entity_type == "PRODUCT":
            names = {
                str(f.get("field_name", "")).lower()
                for f in _dynamic_fields_as_list(fields)
                if isinstance(f, Mapping)
            }
            if not any("price" in n for n in names):
                result.add(warning("PRODUCT-PRICE-MISSING", "Product created without a price field"))

        for index, rel in enumerate(_as_list(payload.get("relationships"))):
            if not isinstance(rel, Mapping):
                result.add(
                    error(
                        "RELATIONSHIP-INVALID",
                        f"relationships[{index}] must be an object",
                        index=index,
                    )
                )
                continue
            sub = check_relationship_payload(
                rel, organization_id=organization_id, require_from=False
            )
            for v in sub.violations:
                result.add(Violation(v.code, v.message, v.severity, {**v.context, "index": index}))
    return result


def check_gl_balance(lines: Iterable[Mapping[str, Any]], default_currency: str = "DEFAULT") -> GuardrailResult:
    """
    Debits must equal credits, per currency, within 0.01.

    Only lines whose smart code contains ``.GL.`` take part.
    """
    result = GuardrailResult(rules_checked=["gl_balance"])
    totals: dict[str, dict[str, Decimal]] = defaultdict(lambda: {"DR": Decimal(0), "CR": Decimal(0)})
    gl_count = 0

    for index, line in enumerate(lines):
        if not isinstance(line, Mapping):
            result.add(error("LINE-INVALID", f"lines[{index}] must be an object", index=index))
            continue
        if ".GL." not in str(line.get("smart_code") or ""):
            continue
        gl_count += 1
        line_data = line.get("line_data") or {}
        if not isinstance(line_data, Mapping):
            result.add(
                error(
                    "LINE-DATA-INVALID",
                    f"lines[{index}].line_data must be an object",
                    index=index,
                )
            )
            continue
        side = str(line_data.get("side") or "").upper()
        if side not in GL_SIDES:
            result.add(error("GL-SIDE-REQUIRED", f"lines[{index}].line_data.side must be DR or CR", index=index))
            continue
        amount = _to_decimal(line.get("line_amount"))
        if amount is None or amount < 0:
            result.add(error("GL-AMOUNT-INVALID", f"lines[{index}].line_amount must be a non-negative number", index=index))
            continue
        currency = str(line_data.get("currency") or default_currency)
        totals[currency][side] += amount

    if gl_count < 2:
        result.add(warning("GL-MIN-LINES", "A GL posting normally has at least two lines", count=gl_count))

    for currency, sides in totals.items():
        diff = sides["DR"] - sides["CR"]
        if abs(diff) > BALANCE_TOLERANCE:
            result.add(
                error(
                    "GL-UNBALANCED",
                    f"GL lines do not balance for {currency}: DR {sides['DR']} vs CR {sides['CR']}",
                    currency=currency,
                    debit=str(sides["DR"]),
                    credit=str(sides["CR"]),
                )
            )
    return result


def check_transaction_payload(
    payload: Mapping[str, Any],
    action: str = "CREATE",
    *,
    require_date: bool = False,
) -> GuardrailResult:
    """
    Transaction header and line checks.

    ``payload`` is the flat header dict with a ``lines`` list.
    """
    action = action.upper()
    result = GuardrailResult(rules_checked=["transaction"])

    if action not in TRANSACTION_ACTIONS:
        result.add(error("ACTION-INVALID", f"Unsupported action '{action}'"))
        return result

    if action in ("UPDATE", "DELETE", "REVERSE") and _is_blank(payload.get("transaction_id")):
        result.add(error("TXN-ID-REQUIRED", f"transaction_id is required for {action}"))
    if action != "CREATE":
        return result

    txn_type = payload.get("transaction_type")
    if _is_blank(txn_type):
        result.add(error("TXN-TYPE-REQUIRED", "transaction_type is required"))
    if require_date and _is_blank(payload.get("transaction_date")):
        result.add(error("TXN-DATE-REQUIRED", "transaction_date is required"))

    header_code = payload.get("smart_code")
    result.extend(validate_smart_code(header_code))

    if txn_type and BRANCH_SCOPED_TXN_RE.match(str(txn_type).upper()):
        context = payload.get("business_context") or {}
        if not isinstance(context, Mapping):
            result.add(error("TXN-CONTEXT-INVALID", "business_context must be an object"))
        elif _is_blank(context.get("branch_id")):
            result.add(
                error(
                    "BRANCH-REQUIRED",
                    f"{txn_type} transactions require business_context.branch_id",
                )
            )

    source = payload.get("source_entity_id")
    if not _is_blank(source) and str(source) == str(payload.get("target_entity_id")):
        result.add(warning("TXN-SOURCE-EQUALS-TARGET", "source_entity_id equals target_entity_id"))

    lines = _as_list(payload.get("lines"))
    if not lines:
        result.add(warning("TXN-LINE-REQUIRED", "Transaction has no lines"))
    if len(lines) > MAX_LINES_BEFORE_WARNING:
        result.add(warning("PERF-MANY-LINES", f"{len(lines)} lines in one transaction", count=len(lines)))

    line_sum = Decimal(0)
    for index, line in enumerate(lines):
        if not isinstance(line, Mapping):
            result.add(error("LINE-INVALID", f"lines[{index}] must be an object", index=index))
            continue
        if _is_blank(line.get("line_type")):
            result.add(error("LINE-TYPE-REQUIRED", f"lines[{index}].line_type is required", index=index))
        for v in validate_smart_code(line.get("smart_code"), label=f"lines[{index}].smart_code"):
            code = "LINE-SMARTCODE-REQUIRED" if v.code == "SMARTCODE-REQUIRED" else v.code
            result.add(Violation(code, v.message, v.severity, {**v.context, "index": index}))
        amount = _to_decimal(line.get("line_amount"))
        if amount is None:
            result.add(error("LINE-AMOUNT-INVALID", f"lines[{index}].line_amount must be a number", index=index))
            continue
        is_gl = ".GL." in str(line.get("smart_code") or "")
        if not is_gl and str(line.get("line_type") or "").upper() not in TENDER_LINE_TYPES:
            line_sum += amount

    total = payload.get("total_amount")
    if total is not None:
        total_dec = _to_decimal(total)
        if total_dec is None or total_dec < 0:
            result.add(error("TXN-TOTAL-INVALID", "total_amount must be a non-negative number"))
        elif lines and result.passed and abs(total_dec - line_sum) > BALANCE_TOLERANCE:
            result.add(
                error(
                    "TXN-TOTAL-MISMATCH",
                    f"total_amount {total_dec} does not equal the sum of line amounts {line_sum}",
                    total_amount=str(total_dec),
                    line_sum=str(line_sum),
                )
            )

    code_str = str(header_code or "")
    if ".GL." in code_str or ".FIN." in code_str:
        result.merge(
            check_gl_balance(
                [line for line in lines if isinstance(line, Mapping)],
                default_currency=str(payload.get("transaction_currency_code") or "DEFAULT"),
            )
        )
    return result


# =============================================================================
# Enforcement
# =============================================================================


def enforce(result: GuardrailResult, *, operation: str) -> list[dict[str, Any]]:
    """
    Raise on ERROR violations; return warnings for the response envelope.

    Raises:
        GuardrailViolationError: if the result did not pass
    """
    if result.violations:
        log = logger.info if result.passed else logger.warning
        log(
            f"{operation}: {result.report()}",
            extra={
                "violation_count": len(result.errors),
                "warning_count": len(result.warnings),
            },
        )

    if not result.passed:
        first = result.errors[0]
        message = first.message
        if len(result.errors) > 1:
            message = f"{message} (and {len(result.errors) - 1} more violation(s))"
        raise GuardrailViolationError(
            message,
            violations=result.error_dicts(),
            warnings=result.warning_dicts(),
        )
    return result.warning_dicts()
