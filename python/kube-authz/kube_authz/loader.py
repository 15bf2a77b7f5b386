"""Policy document parsing: YAML/JSON text to typed RBAC entities.

Documents may be written in the flat form::

    {kind: RoleBinding, name: read-pods, namespace: test, subjects: [...], roleRef: {...}}

or as regular Kubernetes manifests with ``apiVersion`` and ``metadata``.
Both are normalized to the flat form before validation. ``kind: List``
documents (``kubectl get -o yaml`` output) are expanded into their items.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from kube_authz.errors import ParseError
from kube_authz.models import (
    ClusterRole,
    ClusterRoleBinding,
    Namespace,
    Role,
    RoleBinding,
    RoleKind,
    ServiceAccount,
    SubjectKind,
)

logger = logging.getLogger(__name__)

ENTITY_TYPES: dict[str, type[BaseModel]] = {
    "Namespace": Namespace,
    "ServiceAccount": ServiceAccount,
    "Role": Role,
    "ClusterRole": ClusterRole,
    "RoleBinding": RoleBinding,
    "ClusterRoleBinding": ClusterRoleBinding,
}

POLICY_SUFFIXES = (".yaml", ".yml", ".json")

Entity = Namespace | ServiceAccount | Role | ClusterRole | RoleBinding | ClusterRoleBinding


def describe(doc: Any, index: int) -> str:
    """Human-readable identity of a document for error messages."""
    if not isinstance(doc, dict):
        return f"document #{index}"
    meta = doc.get("metadata") if isinstance(doc.get("metadata"), dict) else {}
    kind = doc.get("kind") or "<no kind>"
    name = doc.get("name") or meta.get("name") or "<no name>"
    namespace = doc.get("namespace") or meta.get("namespace")
    where = f"{namespace}/{name}" if namespace else name
    return f"document #{index} ({kind} {where})"


def _flatten(doc: dict[str, Any]) -> dict[str, Any]:
    flat = {k: v for k, v in doc.items() if k not in {"metadata", "apiVersion"}}
    meta = doc.get("metadata")
    if isinstance(meta, dict):
        for field in ("name", "namespace"):
            if field in meta and field not in flat:
                flat[field] = meta[field]
    return flat


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def _fix_subjects(flat: dict[str, Any], ident: str) -> None:
    """Apply the ServiceAccount subject namespace rules for bindings."""
    subjects = flat.get("subjects") or []
    if not isinstance(subjects, list):
        raise ParseError("subjects must be a list", ident)
    fixed = []
    for subject in subjects:
        if not isinstance(subject, dict):
            raise ParseError("each subject must be a mapping", ident)
        if subject.get("kind") == SubjectKind.SERVICE_ACCOUNT and not subject.get("namespace"):
            if flat["kind"] == "ClusterRoleBinding":
                raise ParseError(
                    f"ServiceAccount subject '{subject.get('name')}' requires a namespace",
                    ident,
                )
            subject = {**subject, "namespace": flat.get("namespace", "")}
        fixed.append(subject)
    flat["subjects"] = fixed


def _drop_non_resource_rules(flat: dict[str, Any], ident: str) -> None:
    """Remove rules that only grant ``nonResourceURLs``; they never match a resource."""
    rules = flat.get("rules")
    if not isinstance(rules, list):
        return
    kept = [
        rule
        for rule in rules
        if not isinstance(rule, dict)
        or rule.get("resources")
        or not rule.get("nonResourceURLs")
    ]
    if len(kept) != len(rules):
        logger.debug("Dropped %d nonResourceURLs rule(s) from %s", len(rules) - len(kept), ident)
    flat["rules"] = kept


def parse_document(doc: Any, index: int = 0) -> Entity:
    """Validate a single document and return the typed entity.

    Raises:
        ParseError: on unknown kind, missing/invalid fields, or a
            ClusterRoleBinding whose roleRef is not a ClusterRole.
    """
    ident = describe(doc, index)
    if not isinstance(doc, dict):
        raise ParseError("document must be a mapping", ident)

    kind = doc.get("kind")
    if not kind:
        raise ParseError("missing required field 'kind'", ident)
    if not isinstance(kind, str):
        raise ParseError("kind must be a string", ident)
    model = ENTITY_TYPES.get(kind)
    if model is None:
        known = ", ".join(sorted(ENTITY_TYPES))
        raise ParseError(f"unknown kind '{kind}' (expected one of: {known})", ident)

    flat = _flatten(doc)
    if kind in {"RoleBinding", "ClusterRoleBinding"}:
        _fix_subjects(flat, ident)
        role_ref = flat.get("roleRef")
        if (
            kind == "ClusterRoleBinding"
            and isinstance(role_ref, dict)
            and role_ref.get("kind") != RoleKind.CLUSTER_ROLE
        ):
            raise ParseError("ClusterRoleBinding roleRef must be a ClusterRole", ident)
    elif kind in {"Role", "ClusterRole"}:
        _drop_non_resource_rules(flat, ident)

    try:
        return model.model_validate(flat)  # type: ignore[return-value]
    except ValidationError as exc:
        raise ParseError(_summarize(exc), ident) from exc


def iter_documents(docs: Iterable[Any]) -> Iterator[Any]:
    """Yield documents, expanding ``kind: List`` wrappers and dropping empties."""
    for doc in docs:
        if doc is None:
            continue
        if isinstance(doc, dict) and doc.get("kind") == "List":
            items = doc.get("items") or []
            if not isinstance(items, list):
                raise ParseError("List items must be a list", "List document")
            yield from iter_documents(items)
            continue
        yield doc


def parse_documents(
    docs: Iterable[Any],
    *,
    ignored_kinds: Iterable[str] = (),
) -> list[Entity]:
    """Parse every document, failing on the first malformed one."""
    skip = set(ignored_kinds)
    entities: list[Entity] = []
    for index, doc in enumerate(iter_documents(docs)):
        if isinstance(doc, dict) and isinstance(doc.get("kind"), str) and doc["kind"] in skip:
            logger.debug("Skipping %s", describe(doc, index))
            continue
        entities.append(parse_document(doc, index))
    return entities


def load_yaml(text: str, source: str = "") -> list[Any]:
    """Read every document from a (multi-document) YAML or JSON string."""
    try:
        return list(yaml.safe_load_all(text))
    except yaml.YAMLError as exc:
        raise ParseError(f"invalid YAML: {exc}", source) from exc


def _policy_files(path: Path) -> list[Path]:
    if path.is_dir():
        return sorted(p for p in path.rglob("*") if p.suffix in POLICY_SUFFIXES and p.is_file())
    if not path.exists():
        raise ParseError("no such file or directory", str(path))
    return [path]


def load_paths(paths: Iterable[str | Path]) -> list[Any]:
    """Read documents from files and directories (searched recursively)."""
    docs: list[Any] = []
    for raw in paths:
        for file in _policy_files(Path(raw)):
            docs.extend(load_yaml(file.read_text(encoding="utf-8"), str(file)))
            logger.debug("Read policy file %s", file)
    return docs
