# models/resolution.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from models.contact import Contact, MentionedConnection


class ResolutionKind(str, Enum):
    DIRECT = "direct"
    BRIDGE = "bridge"
    NONE = "none"


class MatchSource(str, Enum):
    PHONE = "phone"
    NAME = "name"
    SEMANTIC = "semantic"
    TEXT = "text"
    MENTION = "mention"


class BridgeMatch(BaseModel):
    connection: MentionedConnection
    mentioned_by: Contact


class Suggestion(BaseModel):
    name: str
    score: float


class ResolutionResult(BaseModel):
    kind: ResolutionKind
    query: str
    source: Optional[MatchSource] = None
    contacts: List[Contact] = Field(default_factory=list)
    bridges: List[BridgeMatch] = Field(default_factory=list)
    suggestions: List[Suggestion] = Field(default_factory=list)
    similarity: Optional[float] = None

    @property
    def best(self) -> Optional[Contact]:
        return self.contacts[0] if self.contacts else None

    @classmethod
    def none(cls, query: str, suggestions: Optional[List[Suggestion]] = None) -> "ResolutionResult":
        return cls(kind=ResolutionKind.NONE, query=query, suggestions=suggestions or [])


# --- network graph ---

class GraphNode(BaseModel):
    id: str
    name: str
    type: Literal["user", "contact", "mentioned"]
    degree: int
    tags: List[Dict[str, Any]] = Field(default_factory=list)
    company: Optional[str] = None
    position: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    context: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    is_shared: bool = False
    shared_by_users: List[Dict[str, str]] = Field(default_factory=list)

    @property
    def shared_by_count(self) -> int:
        return len(self.shared_by_users)


class GraphEdge(BaseModel):
    source: str
    target: str
    strength: Literal["STRONG", "MEDIUM", "WEAK"] = "MEDIUM"


class GraphData(BaseModel):
    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)

    def node(self, node_id: str) -> Optional[GraphNode]:
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None
