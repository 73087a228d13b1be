from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from bakedbaker.errors import MalformedRequestError
from bakedbaker.types import LATEST, Version

T = TypeVar("T", bound=BaseModel)

ENVELOPE_FIELDS = frozenset({"ABVersion", "Req"})


class VersionedRequest(BaseModel, Generic[T]):
    """A request pinned to an agent baker version.

    ``ABVersion`` must be a release tag or "latest"; ``Req`` is the request
    sent on to that version.
    """

    model_config = ConfigDict(extra="ignore")

    ABVersion: str | None = None
    Req: T | None = None


@dataclass(slots=True)
class ResolvedRequest(Generic[T]):
    version: Version
    payload: T


def payload_present(payload: BaseModel | None) -> bool:
    """True when the JSON supplied at least one field for ``payload``.

    This is a presence marker, not a zero-value check: ``{"Region": ""}`` is
    present, ``{}`` and ``null`` are not.
    """
    if payload is None:
        return False
    return bool(payload.model_fields_set or payload.model_extra)


def encode_payload(payload: BaseModel) -> bytes:
    """Serialize only the fields the client supplied, undeclared ones included."""
    unset = set(type(payload).model_fields) - payload.model_fields_set
    return payload.model_dump_json(exclude=unset).encode("utf-8")


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "<body>"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def resolve_request(body: bytes, payload_type: type[T]) -> ResolvedRequest[T]:
    """Work out the target version and inner request for ``body``.

    The body is either a ``VersionedRequest`` or a bare ``payload_type``, which
    means "latest". Raises MalformedRequestError when it is neither.
    """
    if not body:
        raise MalformedRequestError("empty body")

    try:
        raw: Any = json.loads(body)
    except ValueError as exc:
        raise MalformedRequestError(f"could not decode the body as JSON: {exc}") from exc

    # A failure here is a syntax or type problem, not missing fields, so the
    # bare form would not decode either.
    try:
        versioned = VersionedRequest[payload_type].model_validate(raw)
    except ValidationError as exc:
        raise MalformedRequestError(f"could not decode the body as a versioned request: {_describe(exc)}") from exc

    if not payload_present(versioned.Req):
        if versioned.ABVersion:
            raise MalformedRequestError("version set without a request body: must provide .Req if .ABVersion is set")

        bare = {k: v for k, v in raw.items() if k not in ENVELOPE_FIELDS or k in payload_type.model_fields}
        try:
            payload = payload_type.model_validate(bare)
        except ValidationError as exc:
            raise MalformedRequestError(f"no valid request content: {_describe(exc)}") from exc
        if not payload_present(payload):
            raise MalformedRequestError("no valid request content: must provide a valid request")
        return ResolvedRequest(version=LATEST, payload=payload)

    if not versioned.ABVersion:
        raise MalformedRequestError("version required: must provide .ABVersion when sending .Req")
    try:
        version = Version(versioned.ABVersion)
    except ValueError as exc:
        raise MalformedRequestError(str(exc)) from exc
    return ResolvedRequest(version=version, payload=versioned.Req)
