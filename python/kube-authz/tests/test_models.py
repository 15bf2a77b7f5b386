"""Tests for RBAC data models."""

import pytest
from kube_authz.models import (
    Decision,
    Effect,
    PolicyRule,
    RoleBinding,
    Subject,
    SubjectKind,
    parse_subject,
)
from pydantic import ValidationError

# ── Subjects ─────────────────────────────────────────────────────


def test_service_account_key_includes_namespace() -> None:
    a = Subject.service_account("test", "default")
    b = Subject.service_account("nginx", "default")
    assert a.key != b.key
    assert a.key == "ServiceAccount/test/default"


def test_user_key_ignores_namespace() -> None:
    odd = Subject(kind=SubjectKind.USER, name="test", namespace="x")
    assert odd.key == Subject.user("test").key


def test_subject_str() -> None:
    assert str(Subject.service_account("test", "default")) == "ServiceAccount test/default"
    assert str(Subject.user("test")) == "User test"


def test_subject_requires_name() -> None:
    with pytest.raises(ValidationError):
        Subject(kind=SubjectKind.USER, name="")


def test_parse_service_account_descriptor() -> None:
    subject = parse_subject("system:serviceaccount:test:default")
    assert subject == Subject.service_account("test", "default")


def test_parse_user_and_group_descriptors() -> None:
    assert parse_subject("test") == Subject.user("test")
    assert parse_subject("user:jane") == Subject.user("jane")
    assert parse_subject("group:ops") == Subject.group("ops")


def test_parse_malformed_service_account_descriptor() -> None:
    with pytest.raises(ValueError):
        parse_subject("system:serviceaccount:test")


def test_parse_subject_passes_subjects_through() -> None:
    subject = Subject.group("ops")
    assert parse_subject(subject) is subject


# ── Rules ────────────────────────────────────────────────────────


def test_rule_exact_match() -> None:
    rule = PolicyRule(apiGroups=[""], resources=["pods"], verbs=["get", "list"])
    assert rule.matches("", "pods", "get")
    assert not rule.matches("", "pods", "delete")
    assert not rule.matches("apps", "pods", "get")
    assert not rule.matches("", "secrets", "get")


@pytest.mark.parametrize(
    ("field", "request_args"),
    [
        ("verbs", ("", "pods", "escalate")),
        ("resources", ("", "anything", "get")),
        ("apiGroups", ("batch", "pods", "get")),
    ],
)
def test_rule_wildcards(field: str, request_args: tuple[str, str, str]) -> None:
    data = {"apiGroups": [""], "resources": ["pods"], "verbs": ["get"]}
    data[field] = ["*"]
    assert PolicyRule.model_validate(data).matches(*request_args)


def test_rule_subresource_wildcard() -> None:
    rule = PolicyRule(apiGroups=["*"], resources=["*/scale"], verbs=["update"])
    assert rule.matches("apps", "deployments/scale", "update")
    assert not rule.matches("apps", "deployments", "update")
    assert not rule.matches("apps", "deployments/status", "update")


def test_rule_subresource_is_literal() -> None:
    rule = PolicyRule(resources=["pods"], verbs=["get"])
    assert not rule.matches("", "pods/log", "get")


def test_rule_resource_names() -> None:
    rule = PolicyRule(resources=["configmaps"], verbs=["get"], resourceNames=["app-config"])
    assert rule.matches("", "configmaps", "get", "app-config")
    assert not rule.matches("", "configmaps", "get", "other")
    assert not rule.matches("", "configmaps", "get")


def test_rule_defaults_to_core_group() -> None:
    rule = PolicyRule(resources=["pods"], verbs=["get"])
    assert rule.api_groups == ("",)


def test_rule_requires_verbs() -> None:
    with pytest.raises(ValidationError):
        PolicyRule(resources=["pods"], verbs=[])


# ── Bindings and decisions ───────────────────────────────────────


def test_role_binding_from_alias_fields() -> None:
    binding = RoleBinding.model_validate(
        {
            "name": "read-pods",
            "namespace": "test",
            "subjects": [{"kind": "User", "name": "jane", "apiGroup": "rbac.authorization.k8s.io"}],
            "roleRef": {"kind": "Role", "name": "pod-reader"},
        }
    )
    assert binding.role_ref.name == "pod-reader"
    assert binding.subjects[0] == Subject.user("jane")


def test_entities_are_frozen() -> None:
    rule = PolicyRule(resources=["pods"], verbs=["get"])
    with pytest.raises(ValidationError):
        rule.verbs = ("delete",)  # type: ignore[misc]


def test_decision_defaults_to_deny() -> None:
    d = Decision()
    assert d.effect == Effect.DENY
    assert d.allowed is False
    assert d.matched is None


def test_decision_serializes_allowed() -> None:
    data = Decision(effect=Effect.ALLOW, reason="ok").model_dump()
    assert data["allowed"] is True
    assert data["effect"] == "allow"
