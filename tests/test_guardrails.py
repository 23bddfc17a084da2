"""
Tests for the pre-RPC guardrail checks.

Verifies:
1. Organization ids are required, well-formed and never the platform org
2. Entity, relationship and transaction payload rules
3. GL balancing per currency
4. enforce() raises on errors and hands back warnings
"""

from __future__ import annotations

import pytest

from hera_api.core.errors import GuardrailViolationError, OrganizationError
from hera_api.services.guardrails import (
    NULL_UUID,
    check_dynamic_fields,
    check_entity_payload,
    check_gl_balance,
    check_payload_size,
    check_relationship_payload,
    check_transaction_payload,
    enforce,
    resolve_organization_id,
    validate_organization_id,
)
from hera_api.services.violations import GuardrailResult, error, warning

ORG = "3df8cc52-3d81-42d5-b088-7736ae26cc7c"
OTHER_ORG = "7b0e4a62-9f11-4c1e-9d3c-0a2f55e1b6d1"
ENTITY_A = "0b6c1f54-2a4e-4d0c-8b35-6f1d9c3e7a21"
ENTITY_B = "5e9d2a17-8c43-4b6f-a1d0-3c7e8f2b4d65"


def codes(result: GuardrailResult) -> list[str]:
    return [v.code for v in result.violations]


class TestOrganization:
    def test_valid_org(self) -> None:
        assert validate_organization_id(ORG) == []

    def test_missing_org(self) -> None:
        assert [v.code for v in validate_organization_id(None)] == ["ORG-FILTER-REQUIRED"]
        assert [v.code for v in validate_organization_id("  ")] == ["ORG-FILTER-REQUIRED"]

    def test_malformed_org(self) -> None:
        assert [v.code for v in validate_organization_id("not-a-uuid")] == ["ORG-ID-INVALID"]

    def test_platform_org_rejected(self) -> None:
        assert [v.code for v in validate_organization_id(NULL_UUID)] == ["ORG-PLATFORM-FORBIDDEN"]
        assert validate_organization_id(NULL_UUID, allow_platform=True) == []

    def test_resolve_prefers_payload(self) -> None:
        assert resolve_organization_id(ORG, None) == ORG

    def test_resolve_falls_back_to_header(self) -> None:
        assert resolve_organization_id(None, ORG.upper()) == ORG

    def test_resolve_requires_one(self) -> None:
        with pytest.raises(OrganizationError) as exc_info:
            resolve_organization_id(None, None)
        assert exc_info.value.code == "ORG-FILTER-REQUIRED"
        assert exc_info.value.status_code == 400

    def test_resolve_mismatch(self) -> None:
        with pytest.raises(OrganizationError) as exc_info:
            resolve_organization_id(ORG, OTHER_ORG)
        assert exc_info.value.code == "ORG-MISMATCH"

    def test_resolve_same_org_in_both_places(self) -> None:
        assert resolve_organization_id(ORG, ORG) == ORG

    def test_resolve_custom_platform_org(self) -> None:
        with pytest.raises(OrganizationError) as exc_info:
            resolve_organization_id(OTHER_ORG, None, platform_org_id=OTHER_ORG)
        assert exc_info.value.code == "ORG-PLATFORM-FORBIDDEN"


class TestEntityPayload:
    def _create(self, **overrides):
        payload = {
            "entity_type": "CUSTOMER",
            "entity_name": "Jane Doe",
            "smart_code": "HERA.SALON.CRM.CUSTOMER.PROFILE.v1",
        }
        payload.update(overrides)
        return payload

    def test_minimal_create_passes(self) -> None:
        result = check_entity_payload(self._create(), "CREATE")
        assert result.passed
        assert result.violations == []

    def test_create_requires_type_name_and_smart_code(self) -> None:
        result = check_entity_payload({}, "CREATE")
        assert {"ENTITY-TYPE-REQUIRED", "ENTITY-NAME-REQUIRED", "SMARTCODE-REQUIRED"} <= set(codes(result))
        assert not result.passed

    def test_update_requires_entity_id(self) -> None:
        result = check_entity_payload({"entity_name": "x"}, "UPDATE")
        assert "ENTITY-ID-REQUIRED" in codes(result)
        # smart code optional on update
        assert "SMARTCODE-REQUIRED" not in codes(result)

    def test_delete_requires_entity_id(self) -> None:
        assert codes(check_entity_payload({}, "DELETE")) == ["ENTITY-ID-REQUIRED"]

    def test_unknown_action(self) -> None:
        assert codes(check_entity_payload(self._create(), "MERGE")) == ["ACTION-INVALID"]

    def test_business_keys_in_metadata_warn(self) -> None:
        result = check_entity_payload(self._create(metadata={"price": 10, "source": "import"}), "CREATE")
        assert result.passed
        assert codes(result) == ["FIELD-PLACEMENT-WARNING"]

    def test_dynamic_fields_checked(self) -> None:
        payload = self._create(
            dynamic_fields={
                "email": {"field_type": "text", "value": "not-an-email", "smart_code": "HERA.SALON.CRM.DYN.EMAIL.v1"},
                "loyalty_tier": {"field_type": "text", "smart_code": "HERA.SALON.CRM.DYN.TIER.v1"},
            }
        )
        result = check_entity_payload(payload, "CREATE")
        assert "FIELD-FORMAT-EMAIL" in codes(result)
        assert "DYNAMIC-FIELD-VALUE-REQUIRED" in codes(result)
        assert not result.passed

    def test_inline_relationship_smart_code_checked(self) -> None:
        payload = self._create(
            relationships=[{"to_entity_id": ENTITY_B, "relationship_type": "HAS_STATUS", "smart_code": "bad"}]
        )
        result = check_entity_payload(payload, "CREATE")
        assert "SMARTCODE-FORMAT" in codes(result)

    def test_gl_account_needs_code(self) -> None:
        result = check_entity_payload(self._create(entity_type="GL_ACCOUNT"), "CREATE")
        assert "ENTITY-CODE-REQUIRED" in codes(result)

    def test_product_without_price_warns(self) -> None:
        result = check_entity_payload(self._create(entity_type="PRODUCT"), "CREATE")
        assert result.passed
        assert "PRODUCT-PRICE-MISSING" in codes(result)


class TestDynamicFields:
    def test_type_mismatch(self) -> None:
        result = check_dynamic_fields(
            [{"field_name": "stock", "field_type": "number", "value": "lots", "smart_code": "HERA.INV.ITEM.DYN.STOCK.v1"}]
        )
        assert codes(result) == ["DYNAMIC-FIELD-TYPE-MISMATCH"]

    def test_unknown_type(self) -> None:
        result = check_dynamic_fields(
            [{"field_name": "x", "field_type": "blob", "value": "1", "smart_code": "HERA.INV.ITEM.DYN.X.v1"}]
        )
        assert codes(result) == ["DYNAMIC-FIELD-TYPE-INVALID"]

    def test_name_required(self) -> None:
        assert codes(check_dynamic_fields([{"value": 1}])) == ["DYNAMIC-FIELD-NAME-REQUIRED"]

    def test_column_style_values_are_read(self) -> None:
        result = check_dynamic_fields(
            [{"field_name": "price", "field_type": "number", "field_value_number": 12.5, "smart_code": "HERA.INV.ITEM.DYN.PRICE.v1"}]
        )
        assert result.violations == []

    def test_short_phone_is_only_a_warning(self) -> None:
        result = check_dynamic_fields(
            [{"field_name": "phone", "value": "555-12", "smart_code": "HERA.CRM.CUST.DYN.PHONE.v1"}]
        )
        assert result.passed
        assert codes(result) == ["FIELD-FORMAT-PHONE"]


class TestRelationshipPayload:
    def _rel(self, **overrides):
        rel = {
            "from_entity_id": ENTITY_A,
            "to_entity_id": ENTITY_B,
            "relationship_type": "HAS_CATEGORY",
            "smart_code": "HERA.UNIVERSAL.PRODUCT.REL.HAS_CATEGORY.v1",
        }
        rel.update(overrides)
        return rel

    def test_valid(self) -> None:
        assert check_relationship_payload(self._rel()).violations == []

    def test_required_fields(self) -> None:
        result = check_relationship_payload({})
        assert {
            "RELATIONSHIP-FROM-ENTITY-REQUIRED",
            "RELATIONSHIP-TO-ENTITY-REQUIRED",
            "RELATIONSHIP-TYPE-REQUIRED",
            "RELATIONSHIP-SMARTCODE-REQUIRED",
        } == set(codes(result))

    def test_self_reference_warns(self) -> None:
        result = check_relationship_payload(self._rel(to_entity_id=ENTITY_A))
        assert result.passed
        assert "RELATIONSHIP-SELF-REFERENCE" in codes(result)

    def test_nonstandard_type_warns(self) -> None:
        result = check_relationship_payload(self._rel(relationship_type="LIKES"))
        assert result.passed
        assert codes(result) == ["RELATIONSHIP-TYPE-NONSTANDARD"]

    def test_cross_org(self) -> None:
        result = check_relationship_payload(self._rel(organization_id=OTHER_ORG), organization_id=ORG)
        assert codes(result) == ["ORG-CROSS-BOUNDARY"]

    def test_strength_out_of_range(self) -> None:
        result = check_relationship_payload(self._rel(relationship_strength=1.5))
        assert codes(result) == ["RELATIONSHIP-STRENGTH-INVALID"]


class TestTransactionPayload:
    def _txn(self, **overrides):
        txn = {
            "transaction_type": "SALE",
            "smart_code": "HERA.SALON.SALE.TXN.RETAIL.v1",
            "total_amount": 150,
            "lines": [
                {"line_type": "ITEM", "line_amount": 100, "smart_code": "HERA.SALON.SALE.LINE.ITEM.v1"},
                {"line_type": "ITEM", "line_amount": 50, "smart_code": "HERA.SALON.SALE.LINE.ITEM.v1"},
            ],
        }
        txn.update(overrides)
        return txn

    def test_valid(self) -> None:
        assert check_transaction_payload(self._txn()).violations == []

    def test_type_required(self) -> None:
        assert "TXN-TYPE-REQUIRED" in codes(check_transaction_payload(self._txn(transaction_type=None)))

    def test_date_required_when_asked(self) -> None:
        result = check_transaction_payload(self._txn(), require_date=True)
        assert codes(result) == ["TXN-DATE-REQUIRED"]

    def test_no_lines_warns(self) -> None:
        result = check_transaction_payload(self._txn(lines=[], total_amount=None))
        assert result.passed
        assert codes(result) == ["TXN-LINE-REQUIRED"]

    def test_line_smart_code_required(self) -> None:
        result = check_transaction_payload(
            self._txn(lines=[{"line_type": "ITEM", "line_amount": 150}])
        )
        assert "LINE-SMARTCODE-REQUIRED" in codes(result)

    def test_non_numeric_line_amount(self) -> None:
        result = check_transaction_payload(
            self._txn(lines=[{"line_type": "ITEM", "line_amount": "abc", "smart_code": "HERA.SALON.SALE.LINE.ITEM.v1"}])
        )
        assert "LINE-AMOUNT-INVALID" in codes(result)

    def test_total_mismatch(self) -> None:
        result = check_transaction_payload(self._txn(total_amount=999))
        assert codes(result) == ["TXN-TOTAL-MISMATCH"]

    def test_total_within_tolerance(self) -> None:
        assert check_transaction_payload(self._txn(total_amount=150.004)).passed

    def test_payment_lines_excluded_from_total(self) -> None:
        txn = self._txn()
        txn["lines"].append({"line_type": "PAYMENT", "line_amount": 150, "smart_code": "HERA.SALON.SALE.LINE.PAYMENT.v1"})
        assert check_transaction_payload(txn).passed

    def test_source_equals_target_warns(self) -> None:
        result = check_transaction_payload(self._txn(source_entity_id=ENTITY_A, target_entity_id=ENTITY_A))
        assert result.passed
        assert codes(result) == ["TXN-SOURCE-EQUALS-TARGET"]

    def test_branch_scoped_type_needs_branch(self) -> None:
        result = check_transaction_payload(self._txn(transaction_type="POS_SALE"))
        assert "BRANCH-REQUIRED" in codes(result)

        ok = check_transaction_payload(
            self._txn(transaction_type="POS_SALE", business_context={"branch_id": ENTITY_B})
        )
        assert ok.passed

    def test_update_needs_transaction_id(self) -> None:
        assert codes(check_transaction_payload({}, "UPDATE")) == ["TXN-ID-REQUIRED"]

    def test_gl_header_triggers_balance_check(self) -> None:
        txn = {
            "transaction_type": "JOURNAL_ENTRY",
            "smart_code": "HERA.FIN.GL.TXN.JE.v1",
            "lines": [
                {"line_type": "GL", "line_amount": 100, "smart_code": "HERA.FIN.GL.LINE.DR.v1", "line_data": {"side": "DR"}},
                {"line_type": "GL", "line_amount": 90, "smart_code": "HERA.FIN.GL.LINE.CR.v1", "line_data": {"side": "CR"}},
            ],
        }
        assert "GL-UNBALANCED" in codes(check_transaction_payload(txn))


class TestGlBalance:
    def _line(self, side, amount, currency=None):
        data = {"side": side}
        if currency:
            data["currency"] = currency
        return {"line_amount": amount, "smart_code": "HERA.FIN.GL.LINE.POST.v1", "line_data": data}

    def test_balanced(self) -> None:
        assert check_gl_balance([self._line("DR", 100), self._line("CR", 100)]).violations == []

    def test_balanced_per_currency(self) -> None:
        lines = [
            self._line("DR", 100, "USD"),
            self._line("CR", 100, "USD"),
            self._line("DR", 50, "EUR"),
            self._line("CR", 40, "EUR"),
        ]
        result = check_gl_balance(lines)
        assert codes(result) == ["GL-UNBALANCED"]
        assert result.errors[0].context["currency"] == "EUR"

    def test_side_required(self) -> None:
        result = check_gl_balance([self._line("X", 1), self._line("CR", 1)])
        assert "GL-SIDE-REQUIRED" in codes(result)

    def test_negative_amount(self) -> None:
        result = check_gl_balance([self._line("DR", -5), self._line("CR", 5)])
        assert "GL-AMOUNT-INVALID" in codes(result)

    def test_single_line_warns(self) -> None:
        result = check_gl_balance([self._line("DR", 0)])
        assert result.passed
        assert codes(result) == ["GL-MIN-LINES"]

    def test_non_gl_lines_ignored(self) -> None:
        lines = [{"line_amount": 100, "smart_code": "HERA.SALON.SALE.LINE.ITEM.v1"}]
        assert codes(check_gl_balance(lines)) == ["GL-MIN-LINES"]


class TestMalformedShapes:
    """Nested values of the wrong shape become violations instead of exceptions."""

    TXN_CODE = "HERA.SALON.SALE.TXN.RETAIL.v1"
    LINE_CODE = "HERA.SALON.SALE.LINE.ITEM.v1"

    def test_line_that_is_not_an_object(self) -> None:
        result = check_transaction_payload(
            {"transaction_type": "SALE", "smart_code": self.TXN_CODE, "lines": ["oops"]}
        )
        assert codes(result) == ["LINE-INVALID"]

    def test_lines_that_are_not_a_list(self) -> None:
        result = check_transaction_payload(
            {"transaction_type": "SALE", "smart_code": self.TXN_CODE, "lines": "oops"}
        )
        assert codes(result) == ["LINE-INVALID"]

    def test_business_context_that_is_not_an_object(self) -> None:
        result = check_transaction_payload(
            {
                "transaction_type": "POS_SALE",
                "smart_code": self.TXN_CODE,
                "business_context": "branch-1",
                "lines": [{"line_type": "ITEM", "line_amount": 10, "smart_code": self.LINE_CODE}],
            }
        )
        assert codes(result) == ["TXN-CONTEXT-INVALID"]

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_line_amount(self, amount: str) -> None:
        result = check_transaction_payload(
            {
                "transaction_type": "SALE",
                "smart_code": self.TXN_CODE,
                "lines": [{"line_type": "ITEM", "line_amount": amount, "smart_code": self.LINE_CODE}],
            }
        )
        assert codes(result) == ["LINE-AMOUNT-INVALID"]

    def test_non_finite_total(self) -> None:
        result = check_transaction_payload(
            {
                "transaction_type": "SALE",
                "smart_code": self.TXN_CODE,
                "total_amount": "NaN",
                "lines": [{"line_type": "ITEM", "line_amount": 10, "smart_code": self.LINE_CODE}],
            }
        )
        assert codes(result) == ["TXN-TOTAL-INVALID"]

    def test_gl_line_shapes(self) -> None:
        code = "HERA.FIN.GL.LINE.POST.v1"
        result = check_gl_balance(
            [
                "oops",
                {"line_amount": 5, "smart_code": code, "line_data": "DR"},
                {"line_amount": "NaN", "smart_code": code, "line_data": {"side": "CR"}},
            ]
        )
        assert ["LINE-INVALID", "LINE-DATA-INVALID", "GL-AMOUNT-INVALID"] == [v.code for v in result.errors]

    def test_gl_transaction_with_bad_line(self) -> None:
        result = check_transaction_payload(
            {"transaction_type": "JOURNAL_ENTRY", "smart_code": "HERA.FIN.GL.TXN.JE.v1", "lines": [42]}
        )
        assert codes(result).count("LINE-INVALID") == 1
        assert not result.passed

    @pytest.mark.parametrize("fields", [["price"], "price", [None]])
    def test_dynamic_field_that_is_not_an_object(self, fields) -> None:
        assert codes(check_dynamic_fields(fields)) == ["DYNAMIC-FIELD-INVALID"]

    def test_non_string_field_type(self) -> None:
        result = check_dynamic_fields(
            [{"field_name": "x", "field_type": 5, "value": "1", "smart_code": "HERA.INV.ITEM.DYN.X.v1"}]
        )
        assert codes(result) == ["DYNAMIC-FIELD-TYPE-INVALID"]

    def test_entity_with_bad_field_and_relationship(self) -> None:
        result = check_entity_payload(
            {
                "entity_type": "PRODUCT",
                "entity_name": "Shampoo",
                "smart_code": "HERA.SALON.PRODUCT.ENTITY.ITEM.v1",
                "dynamic_fields": ["price"],
                "relationships": ["HAS_CATEGORY"],
            }
        )
        assert "DYNAMIC-FIELD-INVALID" in codes(result)
        assert "RELATIONSHIP-INVALID" in codes(result)
        assert not result.passed

    def test_non_finite_strength(self) -> None:
        result = check_relationship_payload(
            {
                "from_entity_id": ENTITY_A,
                "to_entity_id": ENTITY_B,
                "relationship_type": "HAS_CATEGORY",
                "smart_code": "HERA.UNIVERSAL.PRODUCT.REL.HAS_CATEGORY.v1",
                "relationship_strength": "NaN",
            }
        )
        assert codes(result) == ["RELATIONSHIP-STRENGTH-INVALID"]


class TestEnforce:
    def test_returns_warnings(self) -> None:
        result = GuardrailResult(violations=[warning("W-1", "heads up")])
        assert enforce(result, operation="test") == [
            {"code": "W-1", "message": "heads up", "severity": "WARNING"}
        ]

    def test_raises_on_error(self) -> None:
        result = GuardrailResult(
            violations=[error("E-1", "first"), error("E-2", "second"), warning("W-1", "note")]
        )
        with pytest.raises(GuardrailViolationError) as exc_info:
            enforce(result, operation="test")

        exc = exc_info.value
        assert exc.status_code == 400
        assert exc.message == "first (and 1 more violation(s))"
        assert [v["code"] for v in exc.violations] == ["E-1", "E-2"]
        assert [w["code"] for w in exc.warnings] == ["W-1"]

    def test_payload_size(self) -> None:
        assert check_payload_size({"a": "x" * 10}).passed
        assert codes(check_payload_size({"a": "x" * 100}, limit=50)) == ["PAYLOAD-TOO-LARGE"]
