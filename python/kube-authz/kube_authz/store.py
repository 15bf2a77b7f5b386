"""Immutable, indexed snapshot of RBAC policy entities."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any

from kube_authz.errors import DanglingReferenceError, ParseError
from kube_authz.loader import Entity, parse_documents
from kube_authz.models import (
    AnyBinding,
    AnyRole,
    ClusterRole,
    ClusterRoleBinding,
    Namespace,
    Role,
    RoleBinding,
    RoleKind,
    ServiceAccount,
    Subject,
)

logger = logging.getLogger(__name__)

# Namespaces every cluster starts with.
BUILTIN_NAMESPACES = frozenset({"default", "kube-system", "kube-public", "kube-node-lease"})


class PolicyStore:
    """Read-only view over parsed policy.

    Build with :meth:`load` (documents) or :meth:`from_entities`. Once
    constructed, nothing on the store mutates; reloading means building
    a new store.
    """

    def __init__(
        self,
        *,
        namespaces: Mapping[str, Namespace],
        service_accounts: Mapping[tuple[str, str], ServiceAccount],
        roles: Mapping[tuple[str, str], Role],
        cluster_roles: Mapping[str, ClusterRole],
        role_bindings: Mapping[tuple[str, str], RoleBinding],
        cluster_role_bindings: Mapping[str, ClusterRoleBinding],
    ) -> None:
        self._namespaces = MappingProxyType(dict(namespaces))
        self._service_accounts = MappingProxyType(dict(service_accounts))
        self._roles = MappingProxyType(dict(roles))
        self._cluster_roles = MappingProxyType(dict(cluster_roles))
        self._role_bindings = MappingProxyType(dict(role_bindings))
        self._cluster_role_bindings = MappingProxyType(dict(cluster_role_bindings))

        rb_index: dict[tuple[str, str], list[RoleBinding]] = defaultdict(list)
        for binding in self._role_bindings.values():
            for subject in binding.subjects:
                bucket = rb_index[(binding.namespace, subject.key)]
                if binding not in bucket:
                    bucket.append(binding)
        crb_index: dict[str, list[ClusterRoleBinding]] = defaultdict(list)
        for cbinding in self._cluster_role_bindings.values():
            for subject in cbinding.subjects:
                cbucket = crb_index[subject.key]
                if cbinding not in cbucket:
                    cbucket.append(cbinding)

        self._rb_index = MappingProxyType({k: tuple(v) for k, v in rb_index.items()})
        self._crb_index = MappingProxyType({k: tuple(v) for k, v in crb_index.items()})

    # ── Construction ─────────────────────────────────────────────

    @classmethod
    def load(
        cls,
        documents: Iterable[Any],
        *,
        ignored_kinds: Iterable[str] = (),
        require_namespaces: bool = False,
    ) -> PolicyStore:
        """Parse *documents* into a new store. All-or-nothing.

        Raises:
            ParseError: if any document is malformed, two entities share
                a name within the same scope, or (with
                *require_namespaces*) an entity lives in an undeclared
                namespace.
        """
        entities = parse_documents(documents, ignored_kinds=ignored_kinds)
        store = cls.from_entities(entities, require_namespaces=require_namespaces)
        logger.info("Loaded policy store: %s", store.summary())
        return store

    @classmethod
    def from_entities(
        cls,
        entities: Iterable[Entity],
        *,
        require_namespaces: bool = False,
    ) -> PolicyStore:
        namespaces: dict[str, Namespace] = {}
        service_accounts: dict[tuple[str, str], ServiceAccount] = {}
        roles: dict[tuple[str, str], Role] = {}
        cluster_roles: dict[str, ClusterRole] = {}
        role_bindings: dict[tuple[str, str], RoleBinding] = {}
        cluster_role_bindings: dict[str, ClusterRoleBinding] = {}

        def put(table: dict[Any, Any], key: Any, entity: Entity, label: str) -> None:
            if key in table:
                raise ParseError(f"duplicate {label}")
            table[key] = entity

        for entity in entities:
            match entity:
                case Namespace():
                    put(namespaces, entity.name, entity, f"Namespace '{entity.name}'")
                case ServiceAccount():
                    put(
                        service_accounts,
                        (entity.namespace, entity.name),
                        entity,
                        f"ServiceAccount '{entity.namespace}/{entity.name}'",
                    )
                case Role():
                    put(
                        roles,
                        (entity.namespace, entity.name),
                        entity,
                        f"Role '{entity.namespace}/{entity.name}'",
                    )
                case ClusterRole():
                    put(cluster_roles, entity.name, entity, f"ClusterRole '{entity.name}'")
                case RoleBinding():
                    put(
                        role_bindings,
                        (entity.namespace, entity.name),
                        entity,
                        f"RoleBinding '{entity.namespace}/{entity.name}'",
                    )
                case ClusterRoleBinding():
                    put(
                        cluster_role_bindings,
                        entity.name,
                        entity,
                        f"ClusterRoleBinding '{entity.name}'",
                    )
                case _:
                    raise ParseError(f"unsupported entity {type(entity).__name__}")

        if require_namespaces:
            declared = BUILTIN_NAMESPACES | set(namespaces)
            scoped: list[tuple[str, str, str]] = [
                *(("ServiceAccount", ns, n) for ns, n in service_accounts),
                *(("Role", ns, n) for ns, n in roles),
                *(("RoleBinding", ns, n) for ns, n in role_bindings),
            ]
            for kind, ns, name in scoped:
                if ns not in declared:
                    raise ParseError(f"{kind} '{ns}/{name}' is in undeclared namespace '{ns}'")

        return cls(
            namespaces=namespaces,
            service_accounts=service_accounts,
            roles=roles,
            cluster_roles=cluster_roles,
            role_bindings=role_bindings,
            cluster_role_bindings=cluster_role_bindings,
        )

    @classmethod
    def empty(cls) -> PolicyStore:
        return cls.from_entities([])

    # ── Lookup ───────────────────────────────────────────────────

    def find_bindings_for(self, subject: Subject, namespace: str) -> list[AnyBinding]:
        """Bindings that name *subject* and apply in *namespace*.

        RoleBindings come only from *namespace* itself; ClusterRoleBindings
        apply everywhere. An empty *namespace* (cluster-scoped request)
        therefore only yields ClusterRoleBindings.
        """
        key = subject.key
        found: list[AnyBinding] = []
        if namespace:
            found.extend(self._rb_index.get((namespace, key), ()))
        found.extend(self._crb_index.get(key, ()))
        return found

    def resolve_role(self, kind: RoleKind | str, name: str, namespace: str = "") -> AnyRole:
        """Return the role a binding points at.

        Raises:
            DanglingReferenceError: if no such role is loaded.
        """
        if kind == RoleKind.CLUSTER_ROLE:
            cluster_role = self._cluster_roles.get(name)
            if cluster_role is None:
                raise DanglingReferenceError(RoleKind.CLUSTER_ROLE.value, name)
            return cluster_role
        role = self._roles.get((namespace, name))
        if role is None:
            raise DanglingReferenceError(RoleKind.ROLE.value, name, namespace)
        return role

    # ── Introspection ────────────────────────────────────────────

    @property
    def namespaces(self) -> list[str]:
        declared = set(self._namespaces)
        declared.update(ns for ns, _ in self._roles)
        declared.update(ns for ns, _ in self._role_bindings)
        return sorted(declared)

    @property
    def roles(self) -> list[Role]:
        return [self._roles[k] for k in sorted(self._roles)]

    @property
    def cluster_roles(self) -> list[ClusterRole]:
        return [self._cluster_roles[k] for k in sorted(self._cluster_roles)]

    @property
    def role_bindings(self) -> list[RoleBinding]:
        return [self._role_bindings[k] for k in sorted(self._role_bindings)]

    @property
    def cluster_role_bindings(self) -> list[ClusterRoleBinding]:
        return [self._cluster_role_bindings[k] for k in sorted(self._cluster_role_bindings)]

    def has_service_account(self, namespace: str, name: str) -> bool:
        return (namespace, name) in self._service_accounts

    def summary(self) -> dict[str, int]:
        return {
            "namespaces": len(self._namespaces),
            "service_accounts": len(self._service_accounts),
            "roles": len(self._roles),
            "cluster_roles": len(self._cluster_roles),
            "role_bindings": len(self._role_bindings),
            "cluster_role_bindings": len(self._cluster_role_bindings),
        }
