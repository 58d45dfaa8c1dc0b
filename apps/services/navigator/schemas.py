"""Request / response models for the navigator service."""

from typing import Optional

from pydantic import BaseModel, Field

from libs.core.models import Message, SearchResult, Tab
from libs.navigation.orchestrator import DirectiveOutcome, TurnResult
from libs.search.logger import SearchLogEntry


class TurnRequest(BaseModel):
    text: str = Field(..., min_length=1, description="What the user typed")
    user_id: str = Field(default="default", description="Owner of the memory facts")


class DirectiveOutcomeOut(BaseModel):
    kind: str
    value: str
    route: str
    success: bool
    note: Optional[str] = None
    opened_url: Optional[str] = None
    rerouted_to: Optional[str] = None
    resolution_method: Optional[str] = None
    depth: int = 0

    @classmethod
    def from_outcome(cls, outcome: DirectiveOutcome) -> "DirectiveOutcomeOut":
        return cls(
            kind=outcome.directive.kind.value,
            value=outcome.directive.value,
            route=outcome.route.value,
            success=outcome.success,
            note=outcome.note,
            opened_url=outcome.opened_url,
            rerouted_to=outcome.rerouted_to.to_tag() if outcome.rerouted_to else None,
            resolution_method=outcome.resolution_method,
            depth=outcome.depth,
        )


class TurnResponse(BaseModel):
    conversation_id: str
    messages: list[Message] = Field(default_factory=list)
    outcomes: list[DirectiveOutcomeOut] = Field(default_factory=list)
    search_logs: list[SearchLogEntry] = Field(default_factory=list)
    tabs: list[Tab] = Field(default_factory=list)
    cancelled: bool = False
    deep_read_depth: int = 0
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: TurnResult, tabs: list[Tab]) -> "TurnResponse":
        return cls(
            conversation_id=result.conversation_id,
            messages=result.messages,
            outcomes=[DirectiveOutcomeOut.from_outcome(o) for o in result.outcomes],
            search_logs=result.search_logs,
            tabs=tabs,
            cancelled=result.cancelled,
            deep_read_depth=result.deep_read_depth,
            error=result.error,
        )


class StopResponse(BaseModel):
    conversation_id: str
    stopped: bool


class TabsResponse(BaseModel):
    conversation_id: str
    tabs: list[Tab] = Field(default_factory=list)
    active_tab_id: Optional[str] = None


class SearchResponse(BaseModel):
    query: str
    results: list[SearchResult] = Field(default_factory=list)
    log: Optional[SearchLogEntry] = None
