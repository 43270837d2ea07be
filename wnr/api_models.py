from __future__ import annotations

from pydantic import BaseModel, Field

from .models import Discovery, NodeSpec

NAME_PATTERN = r"^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$"


class DiscoveryRequest(BaseModel):
    enabled: bool = Field(False, description="Enable discv5 peer discovery")
    enr_auto_update: bool = False
    bootstrap_node: str = Field("", description="Passed to the node verbatim (ENR or multiaddr)")
    udp_port: int = Field(0, ge=0, le=65535, description="0 keeps the node default")


class NodeRequest(BaseModel):
    name: str = Field(..., pattern=NAME_PATTERN, description="Node name (dns-safe)")
    namespace: str = Field("default", pattern=NAME_PATTERN)
    image: str = Field(..., min_length=1, description="Container image (name:tag)")
    metrics: bool = False
    discovery: DiscoveryRequest = Field(default_factory=DiscoveryRequest)
    protocols: list[str] = Field(default_factory=list, description="relay|store|lightpush")
    static_node: str = Field("", description="Multiaddr, or the name of a sibling node in the namespace")

    def to_spec(self) -> NodeSpec:
        return NodeSpec(
            name=self.name,
            namespace=self.namespace,
            image=self.image,
            metrics=self.metrics,
            discovery=Discovery(**self.discovery.model_dump()),
            protocols=tuple(self.protocols),
            static_node=self.static_node,
        )
