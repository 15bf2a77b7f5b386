"""RBAC authorizer: pure allow/deny decisions over a PolicyStore.

Semantics follow the Kubernetes RBAC authorizer: grants are purely
additive, there is no deny rule, and anything not granted is denied.
A RoleBinding only ever grants inside its own namespace, even when it
references a ClusterRole.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Any

from kube_authz.errors import DanglingReferenceError, InvalidRequestError
from kube_authz.models import (
    GROUP_AUTHENTICATED,
    GROUP_SERVICE_ACCOUNTS,
    AccessRequest,
    AnyBinding,
    AnyRole,
    CanIResult,
    Decision,
    Effect,
    RuleRef,
    Subject,
    SubjectKind,
    parse_subject,
)
from kube_authz.store import PolicyStore

logger = logging.getLogger(__name__)


def identities_for(subject: Subject, groups: Iterable[str] = ()) -> list[Subject]:
    """The subject plus every group it is a member of.

    ServiceAccounts are implicitly in ``system:serviceaccounts`` and
    ``system:serviceaccounts:<namespace>``; everyone is in
    ``system:authenticated``.
    """
    found = [subject]
    names: list[str] = list(groups)
    if subject.kind == SubjectKind.SERVICE_ACCOUNT:
        names += [GROUP_SERVICE_ACCOUNTS, f"{GROUP_SERVICE_ACCOUNTS}:{subject.namespace}"]
    names.append(GROUP_AUTHENTICATED)
    for name in names:
        if not name:
            continue
        group = Subject.group(name)
        if group not in found:
            found.append(group)
    return found


def _validate(request: AccessRequest) -> None:
    if not request.verb.strip():
        raise InvalidRequestError("verb must not be empty")
    if not request.resource.strip():
        raise InvalidRequestError("resource must not be empty")


def deny_reason(request: AccessRequest) -> str:
    """Deny text with the raw request fields; empty group or namespace stay empty."""
    return (
        f"no matching role binding grants {request.verb} on {request.resource} "
        f"in {request.api_group} for {request.subject} in {request.namespace}"
    )


def allow_reason(ref: RuleRef) -> str:
    binding = (
        f"{ref.binding_namespace}/{ref.binding_name}" if ref.binding_namespace else ref.binding_name
    )
    role = f"{ref.role_namespace}/{ref.role_name}" if ref.role_namespace else ref.role_name
    return (
        f"allowed by {ref.binding_kind} '{binding}' "
        f"({ref.role_kind.value} '{role}', rule {ref.rule_index})"
    )


class Authorizer:
    """Evaluates access requests against one PolicyStore snapshot."""

    def __init__(self, store: PolicyStore) -> None:
        self._store = store

    @property
    def store(self) -> PolicyStore:
        return self._store

    def _bindings(
        self,
        subject: Subject,
        namespace: str,
        groups: Iterable[str],
    ) -> list[AnyBinding]:
        seen: set[tuple[str, str, str]] = set()
        bindings: list[AnyBinding] = []
        for identity in identities_for(subject, groups):
            for binding in self._store.find_bindings_for(identity, namespace):
                key = (binding.kind, binding.namespace, binding.name)
                if key not in seen:
                    seen.add(key)
                    bindings.append(binding)
        return bindings

    def _grants(
        self,
        subject: Subject,
        namespace: str,
        groups: Iterable[str],
    ) -> list[tuple[AnyBinding, AnyRole]]:
        """Resolve each applicable binding to its role, skipping dangling refs."""
        resolved = []
        for binding in self._bindings(subject, namespace, groups):
            ref = binding.role_ref
            try:
                role = self._store.resolve_role(ref.kind, ref.name, binding.namespace)
            except DanglingReferenceError as exc:
                logger.warning(
                    "%s '%s' grants nothing: %s",
                    binding.kind,
                    f"{binding.namespace}/{binding.name}" if binding.namespace else binding.name,
                    exc,
                )
                continue
            resolved.append((binding, role))
        return resolved

    @staticmethod
    def _ref(binding: AnyBinding, role: AnyRole, index: int) -> RuleRef:
        return RuleRef(
            role_kind=role.kind,
            role_name=role.name,
            role_namespace=role.namespace,
            rule_index=index,
            rule=role.rules[index],
            binding_kind=binding.kind,
            binding_name=binding.name,
            binding_namespace=binding.namespace,
        )

    def evaluate(self, request: AccessRequest) -> Decision:
        """Decide whether *request* is allowed.

        When several rules match, the one with the lowest
        (role namespace, role kind, role name, rule index) is reported so
        results are stable for a given store.

        Raises:
            InvalidRequestError: if verb or resource is empty.
        """
        _validate(request)

        matches: list[RuleRef] = []
        for binding, role in self._grants(request.subject, request.namespace, request.groups):
            for index, rule in enumerate(role.rules):
                if rule.matches(request.api_group, request.resource, request.verb, request.name):
                    matches.append(self._ref(binding, role, index))
                    break

        if not matches:
            reason = deny_reason(request)
            logger.debug("DENY %s", reason)
            return Decision(effect=Effect.DENY, reason=reason)

        best = min(matches, key=RuleRef.sort_key)
        reason = allow_reason(best)
        logger.debug(
            "ALLOW %s %s/%s for %s in %s: %s",
            request.verb,
            request.api_group or "core",
            request.resource,
            request.subject,
            request.namespace or "cluster scope",
            reason,
        )
        return Decision(effect=Effect.ALLOW, matched=best, reason=reason)

    def can_i(
        self,
        subject: str | Subject,
        verb: str,
        resource: str,
        namespace: str = "",
        api_group: str = "",
        *,
        name: str = "",
        groups: Iterable[str] = (),
    ) -> CanIResult:
        """``kubectl auth can-i`` style query.

        *subject* may be a Subject or a descriptor such as
        ``system:serviceaccount:test:default`` or ``user:test``.
        """
        try:
            parsed = parse_subject(subject)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc
        decision = self.evaluate(
            AccessRequest(
                subject=parsed,
                verb=verb,
                resource=resource,
                namespace=namespace,
                api_group=api_group,
                name=name,
                groups=list(groups),
            )
        )
        metadata: dict[str, Any] = {}
        if decision.matched is not None:
            metadata = decision.matched.model_dump(mode="json", exclude={"rule"})
        return CanIResult(allowed=decision.allowed, reason=decision.reason, metadata=metadata)

    def rules_for(
        self,
        subject: str | Subject,
        namespace: str = "",
        groups: Iterable[str] = (),
    ) -> list[RuleRef]:
        """Every rule granted to *subject* in *namespace* (``can-i --list``)."""
        try:
            parsed = parse_subject(subject)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc
        refs = [
            self._ref(binding, role, index)
            for binding, role in self._grants(parsed, namespace, groups)
            for index in range(len(role.rules))
        ]
        return sorted(refs, key=RuleRef.sort_key)


class PolicyHolder:
    """Owns the current PolicyStore and swaps it atomically on reload.

    Readers grab :attr:`store` (or :meth:`authorizer`) once per request and
    keep evaluating against that snapshot even if a reload lands meanwhile.
    """

    def __init__(
        self,
        store: PolicyStore | None = None,
        *,
        ignored_kinds: Iterable[str] = (),
        require_namespaces: bool = False,
    ) -> None:
        self._store = store if store is not None else PolicyStore.empty()
        self._ignored_kinds = tuple(ignored_kinds)
        self._require_namespaces = require_namespaces
        self._reload_lock = threading.Lock()

    @property
    def store(self) -> PolicyStore:
        return self._store

    def authorizer(self) -> Authorizer:
        return Authorizer(self._store)

    def reload(self, documents: Iterable[Any]) -> PolicyStore:
        """Build a new store from *documents* and make it current.

        On ParseError the previous store stays in place.
        """
        with self._reload_lock:
            store = PolicyStore.load(
                documents,
                ignored_kinds=self._ignored_kinds,
                require_namespaces=self._require_namespaces,
            )
            self._store = store
        logger.info("Policy store replaced")
        return store
