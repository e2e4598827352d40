"""Pipeline snapshot: the single mutable aggregate of a generation session."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from workflow_fsm.fsm.states import GenerationState, HistoryEntry

INITIAL_REASON = "Initialized"


@dataclass(frozen=True)
class ClarifyingQuestion:
    """A question raised by prompt analysis, with optional canned answers."""

    id: str
    text: str
    options: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text, "options": list(self.options)}

    @classmethod
    def from_dict(cls, data: dict) -> ClarifyingQuestion:
        return cls(
            id=str(data["id"]),
            text=data.get("text", ""),
            options=tuple(data.get("options", ())),
        )

    @classmethod
    def coerce(cls, value: Union[ClarifyingQuestion, dict]) -> ClarifyingQuestion:
        if isinstance(value, cls):
            return value
        return cls.from_dict(value)


@dataclass(frozen=True)
class ValidationIssue:
    """A problem the external validator found in the blueprint."""

    kind: str
    message: str
    node_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "node_id": self.node_id}

    @classmethod
    def from_dict(cls, data: dict) -> ValidationIssue:
        # Validators report the category as either "kind" or "type"
        return cls(
            kind=data.get("kind", data.get("type", "error")),
            message=data.get("message", ""),
            node_id=data.get("node_id", data.get("nodeId")),
        )

    @classmethod
    def coerce(cls, value: Union[ValidationIssue, dict]) -> ValidationIssue:
        if isinstance(value, cls):
            return value
        return cls.from_dict(value)


@dataclass
class WorkflowBlueprint:
    """
    Node/edge graph produced by the workflow builder.

    The records are opaque to the state machine: only emptiness is inspected.
    """

    nodes: list[Any] = field(default_factory=list)
    edges: list[Any] = field(default_factory=list)
    structure: Optional[Any] = None

    def is_empty(self) -> bool:
        """True when nothing has been built (the ``{}`` blueprint)."""
        return not self.nodes and not self.edges and self.structure is None

    def has_nodes(self) -> bool:
        return len(self.nodes) > 0

    def to_dict(self) -> dict:
        if self.is_empty():
            return {}
        data: dict[str, Any] = {"nodes": self.nodes, "edges": self.edges}
        if self.structure is not None:
            data["structure"] = self.structure
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> WorkflowBlueprint:
        data = data or {}
        return cls(
            nodes=list(data.get("nodes") or []),
            edges=list(data.get("edges") or []),
            structure=data.get("structure"),
        )

    @classmethod
    def coerce(cls, value: Union[WorkflowBlueprint, dict, None]) -> WorkflowBlueprint:
        if isinstance(value, cls):
            return copy.deepcopy(value)
        return cls.from_dict(value)


def new_session_id() -> str:
    """Generate a short session identifier."""
    return uuid.uuid4().hex[:12]


@dataclass
class PipelineSnapshot:
    """Complete state of one workflow-generation session."""

    session_id: str = field(default_factory=new_session_id)
    current_state: GenerationState = GenerationState.IDLE
    user_prompt: str = ""
    clarifying_questions: list[ClarifyingQuestion] = field(default_factory=list)
    clarifying_answers: dict[str, str] = field(default_factory=dict)
    final_understanding: str = ""
    credentials_required: list[str] = field(default_factory=list)
    credentials_provided: dict[str, str] = field(default_factory=dict)
    blueprint: WorkflowBlueprint = field(default_factory=WorkflowBlueprint)
    validation_errors: list[ValidationIssue] = field(default_factory=list)
    retry_count: int = 0
    last_error: Optional[str] = None
    debug_mode: bool = False
    history: list[HistoryEntry] = field(default_factory=list)

    @classmethod
    def fresh(
        cls,
        session_id: Optional[str] = None,
        debug_mode: bool = False,
    ) -> PipelineSnapshot:
        """Create a zeroed snapshot with the single "Initialized" entry."""
        snapshot = cls(
            session_id=session_id or new_session_id(),
            debug_mode=debug_mode,
        )
        snapshot.history.append(
            HistoryEntry(state=GenerationState.IDLE, reason=INITIAL_REASON)
        )
        return snapshot

    def copy(self) -> PipelineSnapshot:
        """Return a deep copy detached from this snapshot."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "session_id": self.session_id,
            "current_state": self.current_state.value,
            "user_prompt": self.user_prompt,
            "clarifying_questions": [q.to_dict() for q in self.clarifying_questions],
            "clarifying_answers": dict(self.clarifying_answers),
            "final_understanding": self.final_understanding,
            "credentials_required": list(self.credentials_required),
            "credentials_provided": dict(self.credentials_provided),
            "blueprint": self.blueprint.to_dict(),
            "validation_errors": [e.to_dict() for e in self.validation_errors],
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "debug_mode": self.debug_mode,
            "history": [h.to_dict() for h in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> PipelineSnapshot:
        """Create from dictionary."""
        return cls(
            session_id=data["session_id"],
            current_state=GenerationState(data["current_state"]),
            user_prompt=data.get("user_prompt", ""),
            clarifying_questions=[
                ClarifyingQuestion.from_dict(q)
                for q in data.get("clarifying_questions", [])
            ],
            clarifying_answers=dict(data.get("clarifying_answers", {})),
            final_understanding=data.get("final_understanding", ""),
            credentials_required=list(data.get("credentials_required", [])),
            credentials_provided=dict(data.get("credentials_provided", {})),
            blueprint=WorkflowBlueprint.from_dict(data.get("blueprint")),
            validation_errors=[
                ValidationIssue.from_dict(e)
                for e in data.get("validation_errors", [])
            ],
            retry_count=data.get("retry_count", 0),
            last_error=data.get("last_error"),
            debug_mode=data.get("debug_mode", False),
            history=[HistoryEntry.from_dict(h) for h in data.get("history", [])],
        )
