"""RBAC policy data models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field

WILDCARD = "*"

GROUP_AUTHENTICATED = "system:authenticated"
GROUP_SERVICE_ACCOUNTS = "system:serviceaccounts"
SERVICE_ACCOUNT_PREFIX = "system:serviceaccount:"


class SubjectKind(StrEnum):
    """Identity kinds a binding can name."""

    SERVICE_ACCOUNT = "ServiceAccount"
    USER = "User"
    GROUP = "Group"


class RoleKind(StrEnum):
    """Kinds a roleRef may point at."""

    ROLE = "Role"
    CLUSTER_ROLE = "ClusterRole"


class Effect(StrEnum):
    """Outcome of an authorization decision."""

    ALLOW = "allow"
    DENY = "deny"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


# ── Identities ───────────────────────────────────────────────────


class Subject(_Frozen):
    """A ServiceAccount, User or Group.

    ``namespace`` is only meaningful for ServiceAccounts and is ignored
    for Users and Groups when computing the lookup key.
    """

    kind: SubjectKind
    name: str = Field(min_length=1)
    namespace: str = ""

    @property
    def key(self) -> str:
        """Deterministic lookup key: ``kind/namespace/name``."""
        ns = self.namespace if self.kind == SubjectKind.SERVICE_ACCOUNT else ""
        return f"{self.kind.value}/{ns}/{self.name}"

    def __str__(self) -> str:
        if self.kind == SubjectKind.SERVICE_ACCOUNT:
            return f"{self.kind.value} {self.namespace}/{self.name}"
        return f"{self.kind.value} {self.name}"

    @classmethod
    def service_account(cls, namespace: str, name: str) -> Subject:
        return cls(kind=SubjectKind.SERVICE_ACCOUNT, namespace=namespace, name=name)

    @classmethod
    def user(cls, name: str) -> Subject:
        return cls(kind=SubjectKind.USER, name=name)

    @classmethod
    def group(cls, name: str) -> Subject:
        return cls(kind=SubjectKind.GROUP, name=name)


def parse_subject(descriptor: str | Subject) -> Subject:
    """Turn a kubectl ``--as`` style descriptor into a Subject.

    ``system:serviceaccount:<ns>:<name>`` is a ServiceAccount,
    ``group:<name>`` a Group, ``user:<name>`` or any other string a User.
    """
    if isinstance(descriptor, Subject):
        return descriptor
    raw = descriptor.strip()
    if raw.startswith(SERVICE_ACCOUNT_PREFIX):
        ns, _, name = raw[len(SERVICE_ACCOUNT_PREFIX):].partition(":")
        if not ns or not name:
            raise ValueError(f"Malformed service account descriptor '{descriptor}'")
        return Subject.service_account(ns, name)
    if raw.startswith("group:"):
        return Subject.group(raw[len("group:"):])
    if raw.startswith("user:"):
        return Subject.user(raw[len("user:"):])
    return Subject.user(raw)


# ── Policy entities ──────────────────────────────────────────────


class PolicyRule(_Frozen):
    """One grant: any combination of apiGroups × resources × verbs."""

    api_groups: tuple[str, ...] = Field(default=("",), alias="apiGroups")
    resources: tuple[str, ...] = Field(min_length=1)
    verbs: tuple[str, ...] = Field(min_length=1)
    resource_names: tuple[str, ...] = Field(default=(), alias="resourceNames")

    def matches(
        self,
        api_group: str,
        resource: str,
        verb: str,
        name: str = "",
    ) -> bool:
        """Return ``True`` if this rule grants the request."""
        if WILDCARD not in self.verbs and verb not in self.verbs:
            return False
        if WILDCARD not in self.api_groups and api_group not in self.api_groups:
            return False
        if not any(_resource_matches(r, resource) for r in self.resources):
            return False
        if self.resource_names and name not in self.resource_names:
            return False
        return True


def _resource_matches(pattern: str, resource: str) -> bool:
    if pattern == WILDCARD or pattern == resource:
        return True
    # "*/scale" grants the scale subresource of every resource
    if pattern.startswith("*/"):
        _, sep, sub = resource.partition("/")
        return bool(sep) and sub == pattern[2:]
    return False


class Namespace(_Frozen):
    name: str = Field(min_length=1)


class ServiceAccount(_Frozen):
    name: str = Field(min_length=1)
    namespace: str = Field(min_length=1)


class Role(_Frozen):
    """Namespace-scoped set of rules."""

    name: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    rules: tuple[PolicyRule, ...] = ()

    @property
    def kind(self) -> RoleKind:
        return RoleKind.ROLE


class ClusterRole(_Frozen):
    """Cluster-scoped set of rules."""

    name: str = Field(min_length=1)
    rules: tuple[PolicyRule, ...] = ()

    @property
    def kind(self) -> RoleKind:
        return RoleKind.CLUSTER_ROLE

    @property
    def namespace(self) -> str:
        return ""


class RoleRef(_Frozen):
    kind: RoleKind
    name: str = Field(min_length=1)


class RoleBinding(_Frozen):
    """Grants a Role or ClusterRole to subjects within one namespace."""

    name: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    subjects: tuple[Subject, ...] = ()
    role_ref: RoleRef = Field(alias="roleRef")

    @property
    def kind(self) -> str:
        return "RoleBinding"


class ClusterRoleBinding(_Frozen):
    """Grants a ClusterRole to subjects in every namespace."""

    name: str = Field(min_length=1)
    subjects: tuple[Subject, ...] = ()
    role_ref: RoleRef = Field(alias="roleRef")

    @property
    def kind(self) -> str:
        return "ClusterRoleBinding"

    @property
    def namespace(self) -> str:
        return ""


AnyRole = Role | ClusterRole
AnyBinding = RoleBinding | ClusterRoleBinding


# ── Requests and decisions ───────────────────────────────────────


class AccessRequest(BaseModel):
    """A simulated API request to authorize.

    ``namespace`` is empty for cluster-scoped resources. ``groups`` are
    extra group memberships the authenticated identity carries.
    """

    subject: Subject
    verb: str
    resource: str
    namespace: str = ""
    api_group: str = ""
    name: str = ""
    groups: list[str] = []


class RuleRef(BaseModel):
    """Which role and rule produced an Allow."""

    role_kind: RoleKind
    role_name: str
    role_namespace: str = ""
    rule_index: int
    rule: PolicyRule
    binding_kind: str
    binding_name: str
    binding_namespace: str = ""

    def sort_key(self) -> tuple[str, str, str, int, str, str, str]:
        return (
            self.role_namespace,
            self.role_kind.value,
            self.role_name,
            self.rule_index,
            self.binding_namespace,
            self.binding_kind,
            self.binding_name,
        )


class Decision(BaseModel):
    """Result of evaluating an AccessRequest."""

    effect: Effect = Effect.DENY
    matched: RuleRef | None = None
    reason: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def allowed(self) -> bool:
        return self.effect == Effect.ALLOW


class CanIResult(BaseModel):
    """Flattened answer for ``can_i`` callers."""

    allowed: bool
    reason: str = ""
    metadata: dict[str, Any] = {}
