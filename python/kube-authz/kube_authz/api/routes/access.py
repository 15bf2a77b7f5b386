"""Access review endpoints: can-i, evaluate, rule listing and reload."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from kube_authz.api.state import get_holder
from kube_authz.errors import InvalidRequestError, ParseError
from kube_authz.models import AccessRequest, CanIResult, Decision

router = APIRouter(prefix="/v1", tags=["access"])


class CanIRequest(BaseModel):
    """Body for ``POST /v1/can-i``. ``subject`` is a kubectl ``--as`` descriptor."""

    subject: str
    verb: str
    resource: str
    namespace: str = ""
    api_group: str = ""
    name: str = ""
    groups: list[str] = []


class ReloadRequest(BaseModel):
    documents: list[Any]


def _bad_request(exc: InvalidRequestError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post("/can-i")
async def can_i(body: CanIRequest) -> CanIResult:
    """Answer whether *subject* may perform *verb* on *resource*."""
    authorizer = get_holder().authorizer()
    try:
        return authorizer.can_i(
            body.subject,
            body.verb,
            body.resource,
            body.namespace,
            body.api_group,
            name=body.name,
            groups=body.groups,
        )
    except InvalidRequestError as exc:
        raise _bad_request(exc) from exc


@router.post("/evaluate")
async def evaluate(body: AccessRequest) -> Decision:
    """Full decision, including the matching role and rule."""
    try:
        return get_holder().authorizer().evaluate(body)
    except InvalidRequestError as exc:
        raise _bad_request(exc) from exc


@router.get("/rules")
async def list_rules(
    subject: str = Query(min_length=1),
    namespace: str = "",
    groups: list[str] = Query(default=[]),
) -> dict[str, Any]:
    """Rules granted to *subject* in *namespace*."""
    try:
        refs = get_holder().authorizer().rules_for(subject, namespace, groups)
    except InvalidRequestError as exc:
        raise _bad_request(exc) from exc
    return {
        "subject": subject,
        "namespace": namespace,
        "rules": [ref.model_dump(mode="json", by_alias=True) for ref in refs],
        "total": len(refs),
    }


@router.post("/reload")
async def reload(body: ReloadRequest) -> dict[str, Any]:
    """Replace the policy store. The old store stays active on error."""
    try:
        store = get_holder().reload(body.documents)
    except ParseError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    return {"status": "reloaded", "policies": store.summary()}
