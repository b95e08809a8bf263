"""
Pydantic schemas for endpoint relations.
"""

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class Relation(BaseModel):
    """Directed, typed edge from a provider endpoint to a target endpoint."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    provider: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    relation_type: str = Field(..., min_length=1, max_length=64)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    sequence: int = Field(default=0, description="Insertion order, assigned by the graph")

    @property
    def key(self):
        return (self.provider, self.target, self.relation_type)

    @property
    def is_self_relation(self) -> bool:
        return self.provider == self.target


class EndpointRelation(BaseModel):
    """One side of a relation as attached to an endpoint."""

    peer: str
    relation_type: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EndpointRelations(BaseModel):
    provides: List[EndpointRelation] = Field(default_factory=list)
    receives: List[EndpointRelation] = Field(default_factory=list)
