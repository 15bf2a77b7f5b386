"""Offline Kubernetes-style RBAC policy evaluator."""

from kube_authz.authorizer import Authorizer, PolicyHolder
from kube_authz.errors import AuthzError, DanglingReferenceError, InvalidRequestError, ParseError
from kube_authz.loader import load_paths, load_yaml
from kube_authz.models import AccessRequest, CanIResult, Decision, Effect, Subject, parse_subject
from kube_authz.store import PolicyStore

__all__ = [
    "AccessRequest",
    "Authorizer",
    "AuthzError",
    "CanIResult",
    "DanglingReferenceError",
    "Decision",
    "Effect",
    "InvalidRequestError",
    "ParseError",
    "PolicyHolder",
    "PolicyStore",
    "Subject",
    "load_paths",
    "load_yaml",
    "parse_subject",
]
