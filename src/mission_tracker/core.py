"""Core data models for mission-tracker.

Record Lifecycle:
-----------------
A WorkUnit is created IN_PROGRESS with a SnapshotDescriptor of the tree,
and is written exactly once more on completion with its terminal status,
ChangeSet and ScopeVerdict. It is never reopened.

A Container (workflow, mission, phase) never has its terminal status set
by a caller. Its status is re-derived from its children every time one of
them reaches a terminal state, which keeps concurrent completions safe
without transactions: every recomputation reads the current children and
the last writer wins with an equally correct answer.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import MILESTONE_MESSAGE_MAX
from .errors import ValidationError


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# ============= Enums =============

class SnapshotKind(str, Enum):
    """How the starting state of a unit of work was captured."""

    VERSIONED = "versioned"
    FINGERPRINT = "fingerprint"


class DiffAvailability(str, Enum):
    """How much of a ChangeSet could actually be observed."""

    COMPLETE = "complete"            # Every probe answered
    PARTIAL = "partial"              # One diff half failed and contributed nothing
    UNAVAILABLE = "unavailable"      # The probe could not run at completion
    NOT_SUPPORTED = "not_supported"  # Fingerprint snapshots cannot be diffed


class UnitStatus(str, Enum):
    """Status of a single WorkUnit."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (UnitStatus.SUCCESS, UnitStatus.PARTIAL_SUCCESS, UnitStatus.FAILED)


class ContainerStatus(str, Enum):
    """Status of a phase, workflow or mission."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    BLOCKED = "BLOCKED"  # Overlay: unresolved issue needs human review

    @property
    def is_terminal(self) -> bool:
        return self in (ContainerStatus.COMPLETED, ContainerStatus.FAILED)


class ContainerKind(str, Enum):
    """Kind of grouping entity."""

    WORKFLOW = "WORKFLOW"
    MISSION = "MISSION"
    PHASE = "PHASE"


class CallerType(str, Enum):
    ORCHESTRATOR = "ORCHESTRATOR"
    SUBAGENT = "SUBAGENT"


class TestsStatus(str, Enum):
    PASSED = "PASSED"
    FAILED = "FAILED"
    NOT_RUN = "NOT_RUN"


class IssueType(str, Enum):
    DOC_GAP = "DOC_GAP"
    BUG = "BUG"
    DEPENDENCY_CONFLICT = "DEPENDENCY_CONFLICT"
    UNCLEAR_REQUIREMENT = "UNCLEAR_REQUIREMENT"
    OTHER = "OTHER"


class DecisionCategory(str, Enum):
    ARCHITECTURE = "ARCHITECTURE"
    LIBRARY_CHOICE = "LIBRARY_CHOICE"
    TRADE_OFF = "TRADE_OFF"
    WORKAROUND = "WORKAROUND"
    OTHER = "OTHER"


class MissionProfile(str, Enum):
    """Mission complexity profile."""

    SIMPLE = "SIMPLE"
    STANDARD = "STANDARD"
    COMPLEX = "COMPLEX"


# ============= Caller Input Maps =============

UNIT_STATUS_INPUT: Dict[str, UnitStatus] = {
    "success": UnitStatus.SUCCESS,
    "partial_success": UnitStatus.PARTIAL_SUCCESS,
    "failed": UnitStatus.FAILED,
}

CALLER_TYPE_INPUT: Dict[str, CallerType] = {
    "orchestrator": CallerType.ORCHESTRATOR,
    "subagent": CallerType.SUBAGENT,
}

TESTS_STATUS_INPUT: Dict[str, TestsStatus] = {
    "passed": TestsStatus.PASSED,
    "failed": TestsStatus.FAILED,
    "not_run": TestsStatus.NOT_RUN,
}

ISSUE_TYPE_INPUT: Dict[str, IssueType] = {
    "documentation_gap": IssueType.DOC_GAP,
    "bug_encountered": IssueType.BUG,
    "dependency_conflict": IssueType.DEPENDENCY_CONFLICT,
    "unclear_requirement": IssueType.UNCLEAR_REQUIREMENT,
    "other": IssueType.OTHER,
}

DECISION_CATEGORY_INPUT: Dict[str, DecisionCategory] = {
    "architecture": DecisionCategory.ARCHITECTURE,
    "library_choice": DecisionCategory.LIBRARY_CHOICE,
    "trade_off": DecisionCategory.TRADE_OFF,
    "workaround": DecisionCategory.WORKAROUND,
    "other": DecisionCategory.OTHER,
}

PROFILE_INPUT: Dict[str, MissionProfile] = {
    "simple": MissionProfile.SIMPLE,
    "standard": MissionProfile.STANDARD,
    "complex": MissionProfile.COMPLEX,
}

# Default phase count per profile
PROFILE_PHASES: Dict[MissionProfile, int] = {
    MissionProfile.SIMPLE: 2,
    MissionProfile.STANDARD: 3,
    MissionProfile.COMPLEX: 4,
}


def parse_choice(mapping: Mapping[str, Enum], value: Union[str, Enum], label: str):
    """Convert caller input (snake_case) into its enum value.

    Enum members are passed through unchanged.

    Raises:
        ValidationError: If the value is not one of the accepted inputs
    """
    if isinstance(value, Enum):
        if value in mapping.values():
            return value
        raise ValidationError(f"Invalid {label}: {value.value}")
    key = str(value).strip().lower()
    if key not in mapping:
        choices = ", ".join(mapping)
        raise ValidationError(f"Invalid {label}: '{value}' (expected one of: {choices})")
    return mapping[key]


# ============= Snapshot / Diff Values =============

class SnapshotDescriptor(BaseModel):
    """Opaque handle to the state of the tree when work began.

    ``payload`` is the revision id for versioned snapshots and a
    path -> digest mapping for fingerprint snapshots.
    """

    model_config = ConfigDict(frozen=True)

    kind: SnapshotKind
    id: str
    payload: Union[str, Dict[str, str]]

    @model_validator(mode="after")
    def _check_payload(self):
        if self.kind == SnapshotKind.VERSIONED and not isinstance(self.payload, str):
            raise ValueError("versioned snapshot payload must be a revision id")
        if self.kind == SnapshotKind.FINGERPRINT and not isinstance(self.payload, dict):
            raise ValueError("fingerprint snapshot payload must be a path -> digest mapping")
        return self

    @property
    def revision(self) -> Optional[str]:
        """Revision id for versioned snapshots, None otherwise."""
        return self.payload if self.kind == SnapshotKind.VERSIONED else None

    @property
    def fingerprints(self) -> Dict[str, str]:
        """Path -> digest mapping for fingerprint snapshots, empty otherwise."""
        return dict(self.payload) if self.kind == SnapshotKind.FINGERPRINT else {}


class ChangeSet(BaseModel):
    """Classified set of paths that changed during a unit of work.

    The three lists are sorted, free of duplicates and pairwise disjoint.
    """

    model_config = ConfigDict(frozen=True)

    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    availability: DiffAvailability = DiffAvailability.COMPLETE
    notes: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            for key in ("added", "modified", "deleted"):
                data[key] = sorted(set(data.get(key) or []))
        return data

    @model_validator(mode="after")
    def _check_disjoint(self):
        added, modified, deleted = set(self.added), set(self.modified), set(self.deleted)
        overlap = (added & modified) | (added & deleted) | (modified & deleted)
        if overlap:
            raise ValueError(f"paths appear in more than one list: {sorted(overlap)}")
        return self

    @classmethod
    def empty(cls, availability: DiffAvailability = DiffAvailability.COMPLETE,
              note: Optional[str] = None) -> "ChangeSet":
        """Empty ChangeSet, optionally marked with why nothing was observed."""
        return cls(availability=availability, notes=[note] if note else [])

    @property
    def all_paths(self) -> List[str]:
        """Every changed path: added, then modified, then deleted."""
        return [*self.added, *self.modified, *self.deleted]

    @property
    def total_files(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)

    @property
    def summary(self) -> str:
        """Human-readable summary."""
        parts = []
        if self.added:
            parts.append(f"+{len(self.added)} added")
        if self.modified:
            parts.append(f"~{len(self.modified)} modified")
        if self.deleted:
            parts.append(f"-{len(self.deleted)} deleted")
        text = ", ".join(parts) if parts else "no changes"
        if self.availability != DiffAvailability.COMPLETE:
            text += f" ({self.availability.value})"
        return text


class ScopeVerdict(BaseModel):
    """Result of comparing changed paths against declared work areas."""

    model_config = ConfigDict(frozen=True)

    scope_match: bool = True
    unexpected_files: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


# ============= Completion Details =============

class Outcome(BaseModel):
    """What the completing caller reports about the work."""

    summary: str
    achievements: List[str] = Field(default_factory=list)
    limitations: List[str] = Field(default_factory=list)
    manual_review_needed: bool = False
    manual_review_reason: Optional[str] = None
    next_steps: List[str] = Field(default_factory=list)


class UnitMetadata(BaseModel):
    """Optional execution metadata reported on completion."""

    packages_added: List[str] = Field(default_factory=list)
    packages_removed: List[str] = Field(default_factory=list)
    commands_executed: List[str] = Field(default_factory=list)
    tests_status: Optional[TestsStatus] = None


class RollupMetrics(BaseModel):
    """Numbers recomputed from all descendant WorkUnits of a container."""

    total_units: int = 0
    success: int = 0
    partial: int = 0
    failed: int = 0
    in_progress: int = 0
    total_duration_ms: int = 0
    total_tokens: int = 0
    files_changed: int = 0


# ============= Records =============

class WorkUnit(BaseModel):
    """Smallest tracked piece of work (a task)."""

    record_type: Literal["unit"] = "unit"
    id: str
    container_id: str
    parent_unit_id: Optional[str] = None
    name: str
    goal: str = ""
    areas: List[str] = Field(default_factory=list)
    caller_type: Optional[CallerType] = None
    agent_name: Optional[str] = None
    root_path: Optional[str] = None  # Tree the snapshot was taken of

    status: UnitStatus = UnitStatus.IN_PROGRESS
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    tokens_input: Optional[int] = None
    tokens_output: Optional[int] = None

    snapshot: SnapshotDescriptor
    changes: Optional[ChangeSet] = None
    verdict: Optional[ScopeVerdict] = None
    outcome: Optional[Outcome] = None
    metadata: Optional[UnitMetadata] = None


class Container(BaseModel):
    """Phase, workflow or mission whose status derives from its children."""

    record_type: Literal["container"] = "container"
    id: str
    kind: ContainerKind
    name: str
    parent_id: Optional[str] = None
    number: Optional[int] = None  # Phase ordinal within a mission

    status: ContainerStatus = ContainerStatus.PENDING
    blocked: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    description: Optional[str] = None
    objective: Optional[str] = None
    scope: Optional[str] = None
    constraints: Optional[str] = None
    profile: Optional[MissionProfile] = None
    total_phases: Optional[int] = None

    rollup: RollupMetrics = Field(default_factory=RollupMetrics)


class Issue(BaseModel):
    """Problem reported against a unit of work."""

    record_type: Literal["issue"] = "issue"
    id: str
    unit_id: str
    container_id: str
    issue_type: IssueType
    description: str
    resolution: str
    requires_human_review: bool = False
    resolved: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Decision(BaseModel):
    """Choice made during a unit of work, with what else was considered."""

    record_type: Literal["decision"] = "decision"
    id: str
    unit_id: str
    container_id: str
    category: DecisionCategory
    question: str
    options_considered: List[str] = Field(default_factory=list)
    chosen: str
    reasoning: str
    trade_offs: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Milestone(BaseModel):
    """Progress note from a running unit of work."""

    record_type: Literal["milestone"] = "milestone"
    id: str
    unit_id: str
    container_id: str
    message: str = Field(max_length=MILESTONE_MESSAGE_MAX)
    progress: Optional[float] = Field(default=None, ge=0, le=100)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


# ============= Service Results =============

class UnitStarted(BaseModel):
    """Result of starting a unit of work."""

    unit_id: str
    container_id: str
    snapshot: SnapshotDescriptor
    started_at: datetime
    phase_created: bool = False


class UnitCompleted(BaseModel):
    """Result of completing a unit of work."""

    unit_id: str
    status: UnitStatus
    duration_ms: int
    changes: ChangeSet
    verdict: ScopeVerdict
    container_status: Optional[ContainerStatus] = None


class ContainerContext(BaseModel):
    """Read model of a container with its children and open issues."""

    container: Container
    child_containers: List[Container] = Field(default_factory=list)
    units: List[WorkUnit] = Field(default_factory=list)
    open_issues: List[Issue] = Field(default_factory=list)
    decisions: List[Decision] = Field(default_factory=list)    # Newest first
    milestones: List[Milestone] = Field(default_factory=list)  # Newest first
