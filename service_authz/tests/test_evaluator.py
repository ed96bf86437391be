"""
Unit tests for the policy evaluator.
"""

import pytest

from service_authz.app.policy.evaluator import (
    PolicyEvaluator,
    evaluate,
    get_effective_permissions,
    has_permission,
    has_role,
)
from service_authz.app.policy.models import PolicyResult, Role, UserAttributes
from service_authz.app.policy.tables import compile_policy, install_policy_tables, reset_policy_tables
from shared.test_helpers import ActorFactory


@pytest.fixture
def user_attributes():
    """Create global-scope attributes with l3 clearance."""
    return UserAttributes(**ActorFactory.create_attributes())


class TestEvaluatePolicy:
    """Test cases for evaluate - deny by default."""

    def test_invalid_role_denied_by_default(self, user_attributes):
        """Test deny by default for an unknown role."""
        result = evaluate(["invalid_role"], user_attributes, "cases", "read")

        assert result.allowed is False
        assert result.deny_by_default is True
        assert "lacks permission" in result.reason
        assert "cases:read" in result.reason

    def test_valid_role_and_attributes(self, user_attributes):
        """Test allow for valid role and attributes."""
        result = evaluate(["admin"], user_attributes, "cases", "read")

        assert result.allowed is True
        assert result.deny_by_default is True
        assert result.reason == "Access granted after policy evaluation"
        assert result.required_attributes is None

    def test_branch_scope_denies_different_org(self, user_attributes):
        """Test branch-scoped access to a different org."""
        attributes = UserAttributes(**ActorFactory.create_attributes(access_scope="branch"))

        result = evaluate(["branch_manager"], attributes, "cases", "read:branch", {"org_id": "different_org"})

        assert result.allowed is False
        assert "Branch-scoped access denied" in result.reason
        assert result.deny_by_default is False

    def test_insufficient_clearance(self, user_attributes):
        """Test deny for insufficient clearance level."""
        attributes = UserAttributes(**ActorFactory.create_attributes(clearance_level="l1"))

        result = evaluate(["admin"], attributes, "hedging", "write")

        assert result.allowed is False
        assert "clearance level" in result.reason
        assert result.required_attributes == ("clearance_level>=l4",)

    def test_governance_requires_super_admin(self, user_attributes):
        """Test the governance super admin requirement."""
        result = evaluate(["admin"], user_attributes, "governance", "write")

        assert result.allowed is False
        assert "super admin role" in result.reason
        assert result.deny_by_default is False

    def test_super_admin_governance(self, user_attributes):
        """Test super admin governance writes."""
        assert evaluate(["super_admin"], user_attributes, "governance", "write").allowed is True

    def test_l4_hedging(self):
        """Test L4 clearance for hedging operations."""
        attributes = UserAttributes(**ActorFactory.create_attributes(clearance_level="l4"))

        assert evaluate(["admin"], attributes, "hedging", "write").allowed is True

    def test_investor_view_aggregated_only(self, user_attributes):
        """Test investor view is restricted to aggregated data."""
        allowed_result = evaluate(["investor_view"], user_attributes, "kpi", "read:aggregated")
        denied_result = evaluate(["investor_view"], user_attributes, "kpi", "read")

        assert allowed_result.allowed is True
        assert denied_result.allowed is False
        assert "lacks permission for kpi:read" in denied_result.reason

    def test_regional_scope(self, user_attributes):
        """Test regional scope restrictions."""
        attributes = UserAttributes(**ActorFactory.create_attributes(access_scope="regional"))

        result = evaluate(["branch_manager"], attributes, "cases", "read:branch", {"region": "us-west"})

        assert result.allowed is False
        assert "Regional access denied" in result.reason

    @pytest.mark.parametrize("attributes", [None, {}, {"org_id": ""}, {"org_id": "   "}, "org1", 42, {"region": "us-east"}])
    def test_malformed_attributes(self, attributes):
        """Test evaluation errors are handled gracefully."""
        result = evaluate(["admin"], attributes, "cases", "read")

        assert result.allowed is False
        assert result.reason == "Policy evaluation failed"
        assert result.deny_by_default is True

    def test_mapping_attributes_are_accepted(self):
        """Test raw attribute mappings are validated."""
        result = evaluate(["admin"], {"org_id": "org1"}, "cases", "read")

        assert result.allowed is True

    @pytest.mark.parametrize("resource,action", [(None, "read"), ("cases", None), ("", "read"), ("cases", "")])
    def test_malformed_target(self, user_attributes, resource, action):
        """Test malformed resource or action."""
        result = evaluate(["super_admin"], user_attributes, resource, action)

        assert result.allowed is False
        assert result.reason == "Policy evaluation failed"

    def test_malformed_context(self, user_attributes):
        """Test a resource context that is not a mapping."""
        result = evaluate(["admin"], user_attributes, "cases", "read", ["org1"])

        assert result.reason == "Policy evaluation failed"

    @pytest.mark.parametrize("roles", [None, [], 42])
    def test_malformed_roles_never_raise(self, user_attributes, roles):
        """Test odd role inputs degrade to a denial."""
        result = evaluate(roles, user_attributes, "cases", "read")

        assert isinstance(result, PolicyResult)
        assert result.allowed is False
        assert result.deny_by_default is True

    def test_result_is_immutable(self, user_attributes):
        """Test PolicyResult cannot be changed after the fact."""
        result = evaluate(["read_only"], user_attributes, "cases", "read")

        with pytest.raises(AttributeError):
            result.allowed = True

    def test_result_wire_shape(self, user_attributes):
        """Test to_dict uses the camelCase wire names."""
        attributes = UserAttributes(**ActorFactory.create_attributes(clearance_level="l1"))

        data = evaluate(["admin"], attributes, "hedging", "write").to_dict()

        assert data == {
            "allowed": False,
            "reason": "requires l4 clearance level",
            "denyByDefault": False,
            "requiredAttributes": ["clearance_level>=l4"],
        }


class TestAccessScenarios:
    """End-to-end decision scenarios."""

    def test_admin_hedging_write_by_clearance(self):
        """Test admin hedging writes turn on l4."""
        low = evaluate(["admin"], {"org_id": "org1", "clearance_level": "l1"}, "hedging", "write")
        high = evaluate(["admin"], {"org_id": "org1", "clearance_level": "l4"}, "hedging", "write")

        assert low.allowed is False
        assert "clearance" in low.reason
        assert high.allowed is True

    def test_branch_manager_other_org(self):
        """Test branch manager reading another org's cases."""
        result = evaluate(
            ["branch_manager"],
            {"access_scope": "branch", "org_id": "org1"},
            "cases",
            "read:branch",
            {"org_id": "org2"},
        )

        assert result.allowed is False
        assert result.reason == "Branch-scoped access denied"

    @pytest.mark.parametrize("attributes", [
        {"org_id": "org1"},
        {"org_id": "org1", "clearance_level": "l1", "access_scope": "self"},
        {"org_id": "org1", "clearance_level": "l2", "access_scope": "branch", "branch_id": "b1"},
        {"org_id": "org1", "access_scope": "regional", "region": "eu-west"},
    ])
    def test_super_admin_governance_write(self, attributes):
        """Test super admin governance writes regardless of attributes."""
        result = evaluate(["super_admin"], attributes, "governance", "write", {"org_id": "org9", "region": "us-east"})

        assert result.allowed is True


class TestPolicyProperties:
    """Property-style checks for the evaluator."""

    @pytest.mark.parametrize("roles", [["read_only"], ["cs_agent"], ["branch_manager"], ["admin"], ["unknown"]])
    @pytest.mark.parametrize("resource,action", [("ungranted", "read"), ("cases", "purge"), ("spending", "write")])
    def test_deny_by_default_totality(self, user_attributes, roles, resource, action):
        """Test ungranted pairs are denied on the default path."""
        result = evaluate(roles, user_attributes, resource, action)

        assert result.allowed is False
        assert result.deny_by_default is True

    @pytest.mark.parametrize("context", [{"org_id": "org2"}, {"org_id": "org1", "branch_id": "branch2"}])
    def test_scope_veto_independence(self, context):
        """Test a permission pass plus a scope mismatch is an explicit veto."""
        attributes = UserAttributes(**ActorFactory.create_attributes(access_scope="branch"))

        assert has_permission(["admin"], "cases", "read") is True
        result = evaluate(["admin"], attributes, "cases", "read", context)

        assert result.allowed is False
        assert result.deny_by_default is False

    @pytest.mark.parametrize("level,expected", [("l1", False), ("l2", False), ("l3", True), ("l4", True)])
    def test_clearance_monotonicity(self, level, expected):
        """Test an l3 requirement across the ladder."""
        attributes = UserAttributes(**ActorFactory.create_attributes(clearance_level=level))

        assert evaluate(["super_admin"], attributes, "audit", "write").allowed is expected

    def test_override_non_bypass(self):
        """Test no grants table can open governance or hedging writes."""
        permissive = compile_policy(
            grants={"read_only": ["*:*"], "admin": ["governance:*", "hedging:*"]},
            clearance_requirements={},
        )
        evaluator = PolicyEvaluator(tables=permissive)
        attributes = UserAttributes(org_id="org1", access_scope="global", clearance_level="l3")
        top_clearance = UserAttributes(org_id="org1", access_scope="global", clearance_level="l4")

        for roles in (["read_only"], ["admin"]):
            governance = evaluator.evaluate(roles, top_clearance, "governance", "write")
            hedging = evaluator.evaluate(roles, attributes, "hedging", "write")
            assert governance.allowed is False
            assert hedging.allowed is False
            assert "l4" in hedging.reason

    def test_implied_top_role_cannot_write_governance(self, user_attributes):
        """Test governance writes need super admin declared, not inherited."""
        evaluator = PolicyEvaluator(tables=compile_policy(
            hierarchy={"ops_lead": ["super_admin"], "super_admin": []},
        ))

        inherited = evaluator.evaluate(["ops_lead"], user_attributes, "governance", "write")
        declared = evaluator.evaluate(["super_admin"], user_attributes, "governance", "write")

        assert inherited.allowed is False
        assert inherited.reason == "Governance write requires super admin role"
        assert inherited.required_attributes == ("role=super_admin",)
        assert evaluator.evaluate(["ops_lead"], user_attributes, "governance", "read").allowed is True
        assert declared.allowed is True

    @pytest.mark.parametrize("resource,action", [
        ("kpi", "read"), ("kpi", "write"), ("accounting", "read:summary"), ("health", "read"),
        ("cases", "read"), ("governance", "write"),
    ])
    def test_restricted_viewer_containment(self, user_attributes, resource, action):
        """Test investor view can only read aggregated KPIs."""
        assert evaluate(["investor_view"], user_attributes, "kpi", "read:aggregated").allowed is True
        assert evaluate(["investor_view"], user_attributes, resource, action).allowed is False


class TestPolicyEvaluator:
    """Test cases for PolicyEvaluator wiring."""

    @pytest.fixture(autouse=True)
    def restore_tables(self):
        """Restore the built-in tables after each test."""
        yield
        reset_policy_tables()

    def test_reads_published_snapshot(self, user_attributes):
        """Test an unbound evaluator follows table swaps."""
        evaluator = PolicyEvaluator()
        assert evaluator.evaluate(["read_only"], user_attributes, "cases", "read").allowed is False

        install_policy_tables(compile_policy(grants={"read_only": ["cases:read"]}))

        assert evaluator.evaluate(["read_only"], user_attributes, "cases", "read").allowed is True

    def test_bound_evaluator_ignores_swaps(self, user_attributes):
        """Test an evaluator bound to a snapshot keeps it."""
        evaluator = PolicyEvaluator(tables=compile_policy())

        install_policy_tables(compile_policy(grants={"read_only": ["cases:read"]}))

        assert evaluator.evaluate(["read_only"], user_attributes, "cases", "read").allowed is False

    def test_helpers_never_raise(self):
        """Test coarse helpers fail closed on junk input."""
        assert has_role(42, Role.ADMIN) is False
        assert has_permission(42, "cases", "read") is False
        assert get_effective_permissions(["admin"], None) == []

    def test_engine_stats(self):
        """Test engine statistics."""
        stats = PolicyEvaluator().get_engine_stats()

        assert "super_admin" in stats["roles"]
        assert stats["granted_roles"] == 6
        assert stats["clearance_requirements"] == 4
        assert stats["override_rules"] == [
            "governance-write-top-role",
            "hedging-write-l4",
            "kpi-restricted-viewer-aggregated",
        ]
