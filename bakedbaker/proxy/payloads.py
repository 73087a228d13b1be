"""Request payloads for the agent baker RPCs the router exposes.

The schemas belong to agent baker and drift between releases, so every payload
keeps fields it does not declare and forwards them untouched. Declared fields
are only there to reject bodies with the wrong JSON types early.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class AgentBakerRequest(BaseModel):
    model_config = ConfigDict(extra="allow")


class NodeBootstrapDataRequest(AgentBakerRequest):
    pass


class SigImageConfigRequest(AgentBakerRequest):
    SubscriptionID: str | None = None
    TenantID: str | None = None
    Region: str | None = None
    Distro: str | None = None


# Path -> inner payload type. The distro endpoint takes the same request as latest.
ENDPOINTS: dict[str, type[AgentBakerRequest]] = {
    "/getnodebootstrapdata": NodeBootstrapDataRequest,
    "/getlatestsigimageconfig": SigImageConfigRequest,
    "/getdistrosigimageconfig": SigImageConfigRequest,
}
