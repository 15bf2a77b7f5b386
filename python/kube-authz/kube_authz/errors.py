"""Exception hierarchy for policy loading and evaluation."""

from __future__ import annotations


class AuthzError(Exception):
    """Base class for kube-authz errors."""


class ParseError(AuthzError):
    """A policy document is malformed. The whole load is aborted."""

    def __init__(self, message: str, document: str = "") -> None:
        self.document = document
        super().__init__(f"{document}: {message}" if document else message)


class DanglingReferenceError(AuthzError):
    """A binding references a role that does not exist."""

    def __init__(self, kind: str, name: str, namespace: str = "") -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} '{where}' not found")


class InvalidRequestError(AuthzError):
    """An access request is missing required fields."""
