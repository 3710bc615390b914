"""
Browsing History Schemas

Wire-level models for the recall pipeline. Field names are snake_case in
Python and camelCase on the wire (the browser extension and web client use
the Chrome history API's naming).
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..errors import InvalidQuery

# Relevance given to every item of an unranked time-window scan
WINDOW_SENTINEL_SCORE = 1.0


# ============================================================================
# Request
# ============================================================================

@dataclass
class Query:
    """A user's retrieval request. Validated on construction."""
    text: str
    user_id: str
    limit: int = 10
    min_score: float = 0.3

    def __post_init__(self):
        if not isinstance(self.text, str) or not self.text.strip():
            raise InvalidQuery("Query text is required")
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise InvalidQuery("User id is required")
        if isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit <= 0:
            raise InvalidQuery(f"limit must be a positive integer, got {self.limit!r}")
        if isinstance(self.min_score, bool) or not isinstance(self.min_score, (int, float)) \
                or not 0.0 <= self.min_score <= 1.0:
            raise InvalidQuery(f"minScore must be within [0, 1], got {self.min_score!r}")
        self.text = self.text.strip()


# ============================================================================
# Models
# ============================================================================

class TimeWindow(BaseModel):
    """Inclusive [start, end] range in epoch milliseconds."""
    start: int
    end: int
    label: str

    @model_validator(mode="after")
    def _check_order(self) -> "TimeWindow":
        if self.start > self.end:
            raise ValueError(f"TimeWindow start {self.start} is after end {self.end}")
        return self

    def contains(self, timestamp_ms: float) -> bool:
        return self.start <= timestamp_ms <= self.end


class CandidateItem(BaseModel):
    """One archived page matched to a query, not yet confirmed relevant."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str = ""
    title: str = "Untitled"
    last_visit_time: float = Field(default=0, alias="lastVisitTime")
    visit_count: int = Field(default=0, alias="visitCount")
    typed_count: int = Field(default=0, alias="typedCount")
    relevance_score: float = Field(default=0.0, alias="relevanceScore")

    @classmethod
    def from_point(cls, raw: Dict[str, Any], score: Optional[float] = None) -> "CandidateItem":
        """
        Build from a vector-store point ``{id, payload, score}``.

        Args:
            raw: Point dict as returned by VectorClient
            score: Overrides the point's own score (time-window sentinel)
        """
        payload = raw.get("payload") or {}
        point_score = raw.get("score") if score is None else score
        return cls(
            id=str(raw.get("id", "")),
            url=payload.get("url") or "",
            title=payload.get("title") or "Untitled",
            last_visit_time=payload.get("lastVisitTime") or 0,
            visit_count=payload.get("visitCount") or 0,
            typed_count=payload.get("typedCount") or 0,
            relevance_score=point_score if point_score is not None else 0.0,
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class SearchResponse(BaseModel):
    """Response envelope handed to the API layer."""
    model_config = ConfigDict(populate_by_name=True)

    results: List[CandidateItem] = Field(default_factory=list)
    narrative: str = ""
    is_time_machine: bool = Field(default=False, alias="isTimeMachine")
    time_range: Optional[TimeWindow] = Field(default=None, alias="timeRange")

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        if data.get("timeRange") is None:
            data.pop("timeRange", None)
        return data
