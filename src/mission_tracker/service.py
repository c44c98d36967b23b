"""High-level service layer for tracking units of work."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from .constants import MILESTONE_MESSAGE_MAX
from .context import TrackerContext
from .core import (
    CALLER_TYPE_INPUT,
    DECISION_CATEGORY_INPUT,
    ISSUE_TYPE_INPUT,
    PROFILE_INPUT,
    PROFILE_PHASES,
    TESTS_STATUS_INPUT,
    UNIT_STATUS_INPUT,
    ChangeSet,
    Container,
    ContainerContext,
    ContainerKind,
    ContainerStatus,
    DiffAvailability,
    Decision,
    Issue,
    Milestone,
    Outcome,
    RollupMetrics,
    UnitCompleted,
    UnitMetadata,
    UnitStarted,
    UnitStatus,
    WorkUnit,
    parse_choice,
    utcnow,
)
from .diffing import DiffEngine
from .errors import NotFoundError, ProbeError, ValidationError
from .events import (
    DecisionLoggedEvent,
    EventSink,
    LoggingSink,
    UnitCompletedEvent,
    UnitStartedEvent,
    publish,
)
from .scope import verify_scope
from .snapshot import SnapshotService
from .status_computer import ContainerStatusComputer
from .store import RecordStore
from .utils import new_id

logger = logging.getLogger(__name__)


@dataclass
class TrackerDeps:
    """Dependency injection container for testability."""
    store: RecordStore
    snapshots: SnapshotService = field(default_factory=SnapshotService)
    diff_engine: DiffEngine = field(default_factory=DiffEngine)
    sink: Optional[EventSink] = field(default_factory=LoggingSink)
    now: Callable[[], datetime] = utcnow
    root: Optional[Path] = None

    @classmethod
    def from_context(cls, ctx: TrackerContext, sink: Optional[EventSink] = None) -> "TrackerDeps":
        """Wire dependencies from a project's configuration."""
        return cls(
            store=ctx.make_store(),
            snapshots=ctx.make_snapshot_service(),
            diff_engine=DiffEngine(ctx.make_probe()),
            sink=sink or LoggingSink(),
            root=ctx.root,
        )


class TrackerService:
    """Service for starting and completing tracked units of work.

    Every write to a unit is followed by a recomputation of its container
    chain, so container status always reflects the children currently in
    the store. Containers are never marked complete by callers.
    """

    def __init__(self, deps: Optional[TrackerDeps] = None):
        """Initialize with deps, or discover the project from the cwd."""
        if deps is None:
            deps = TrackerDeps.from_context(TrackerContext())
        self.deps = deps
        self.status_computer = ContainerStatusComputer(deps.store, deps.sink, deps.now)

    @property
    def store(self) -> RecordStore:
        return self.deps.store

    # === Containers ===

    def start_workflow(
        self,
        name: str,
        description: Optional[str] = None,
        objective: Optional[str] = None,
        scope: Optional[str] = None,
        constraints: Optional[str] = None,
    ) -> Container:
        """Create a workflow. Workflows are in progress from creation."""
        _require_text(name, "workflow name")
        now = self.deps.now()
        workflow = Container(
            id=new_id("wf"),
            kind=ContainerKind.WORKFLOW,
            name=name.strip(),
            status=ContainerStatus.IN_PROGRESS,
            created_at=now,
            started_at=now,
            description=description,
            objective=objective,
            scope=scope,
            constraints=constraints,
        )
        self.store.create(workflow.id, workflow.model_dump(mode="json"))
        logger.info("Started workflow %s (%s)", workflow.id, workflow.name)
        return workflow

    def start_mission(
        self,
        name: str,
        objective: str,
        description: Optional[str] = None,
        profile: Union[str, Any] = "standard",
        total_phases: Optional[int] = None,
    ) -> Container:
        """Create a mission. Missions stay pending until their first unit starts.

        Raises:
            ValidationError: On an unknown profile or a non-positive phase count
        """
        _require_text(name, "mission name")
        _require_text(objective, "mission objective")
        mission_profile = parse_choice(PROFILE_INPUT, profile, "profile")
        if total_phases is None:
            total_phases = PROFILE_PHASES[mission_profile]
        elif total_phases < 1:
            raise ValidationError(f"total_phases must be at least 1, got {total_phases}")

        mission = Container(
            id=new_id("mission"),
            kind=ContainerKind.MISSION,
            name=name.strip(),
            status=ContainerStatus.PENDING,
            created_at=self.deps.now(),
            objective=objective,
            description=description,
            profile=mission_profile,
            total_phases=total_phases,
        )
        self.store.create(mission.id, mission.model_dump(mode="json"))
        logger.info("Started mission %s (%s, %d phases)", mission.id, mission.name, total_phases)
        return mission

    # === Units ===

    def start_unit(
        self,
        name: str,
        *,
        workflow_id: Optional[str] = None,
        mission_id: Optional[str] = None,
        phase: Optional[int] = None,
        phase_name: Optional[str] = None,
        parent_unit_id: Optional[str] = None,
        caller_type: Optional[str] = None,
        agent_name: Optional[str] = None,
        goal: str = "",
        areas: Optional[Sequence[str]] = None,
        root_path: Optional[Union[str, Path]] = None,
    ) -> UnitStarted:
        """Snapshot the tree and record a new in-progress unit.

        Args:
            name: Short name of the unit
            workflow_id: Workflow to attach to (exclusive with mission_id)
            mission_id: Mission to attach to (exclusive with workflow_id)
            phase: Phase number within the mission; created if missing
            phase_name: Name for a newly created phase
            parent_unit_id: Unit that spawned this one
            caller_type: "orchestrator" or "subagent"
            agent_name: Name of the executing agent
            goal: What the unit intends to achieve
            areas: Declared work areas for scope verification
            root_path: Tree to snapshot (defaults to the project root)

        Raises:
            ValidationError: On invalid arguments
            NotFoundError: If a referenced record does not exist
        """
        _require_text(name, "unit name")
        if (workflow_id is None) == (mission_id is None):
            raise ValidationError("Exactly one of workflow_id or mission_id is required")
        if phase is not None and workflow_id is not None:
            raise ValidationError("phase can only be used with mission_id")

        phase_created = False
        if workflow_id is not None:
            container_id = self._load_container(workflow_id, ContainerKind.WORKFLOW).id
        else:
            mission = self._load_container(mission_id, ContainerKind.MISSION)
            if phase is None:
                container_id = mission.id
            else:
                container_id, phase_created = self._ensure_phase(mission, phase, phase_name)

        if parent_unit_id is not None:
            self._load_unit(parent_unit_id)

        caller = parse_choice(CALLER_TYPE_INPUT, caller_type, "caller type") if caller_type else None
        root = self._root(root_path)
        snapshot = self.deps.snapshots.create_snapshot(root)

        unit = WorkUnit(
            id=new_id("unit"),
            container_id=container_id,
            parent_unit_id=parent_unit_id,
            name=name.strip(),
            goal=goal,
            areas=list(areas or []),
            caller_type=caller,
            agent_name=agent_name,
            root_path=str(root),
            started_at=self.deps.now(),
            snapshot=snapshot,
        )
        self.store.create(unit.id, unit.model_dump(mode="json"))
        logger.info("Started unit %s in %s at snapshot %s", unit.id, container_id, snapshot.id)

        publish(self.deps.sink, UnitStartedEvent(
            unit_id=unit.id, container_id=container_id, snapshot_id=snapshot.id,
        ))
        self.status_computer.propagate(container_id)

        return UnitStarted(
            unit_id=unit.id,
            container_id=container_id,
            snapshot=snapshot,
            started_at=unit.started_at,
            phase_created=phase_created,
        )

    def complete_unit(
        self,
        unit_id: str,
        status: Union[str, UnitStatus],
        outcome: Optional[Union[Outcome, Mapping[str, Any]]] = None,
        metadata: Optional[Union[UnitMetadata, Mapping[str, Any]]] = None,
        tokens_input: Optional[int] = None,
        tokens_output: Optional[int] = None,
    ) -> UnitCompleted:
        """Diff, verify and record a unit's terminal state, then roll it up.

        A probe that cannot run at completion does not stop the unit from
        completing; its ChangeSet is recorded as unavailable instead.

        Raises:
            NotFoundError: If the unit does not exist
            ValidationError: If the unit is not in progress or inputs are invalid
            AggregationInconsistency: If a container child cannot be loaded
        """
        final_status = parse_choice(UNIT_STATUS_INPUT, status, "status")
        for label, value in (("tokens_input", tokens_input), ("tokens_output", tokens_output)):
            if value is not None and value < 0:
                raise ValidationError(f"{label} cannot be negative, got {value}")
        outcome_model = _coerce(Outcome, outcome, "outcome")
        metadata_model = _coerce_metadata(metadata)

        unit = self._load_unit(unit_id)
        if unit.status != UnitStatus.IN_PROGRESS:
            raise ValidationError(
                f"Unit {unit_id} is {unit.status.value}; only IN_PROGRESS units can be completed"
            )

        root = self._root(unit.root_path)
        try:
            changes = self.deps.diff_engine.compute_diff(unit.snapshot, root)
        except ProbeError as e:
            logger.warning("Diff unavailable for unit %s: %s", unit_id, e)
            changes = ChangeSet.empty(DiffAvailability.UNAVAILABLE, f"Diff unavailable: {e}")

        verdict = verify_scope(changes.all_paths, unit.areas)
        for warning in verdict.warnings:
            logger.warning("Unit %s: %s", unit_id, warning)

        now = self.deps.now()
        duration_ms = max(0, int((now - unit.started_at).total_seconds() * 1000))

        self.store.update(unit_id, {
            "status": final_status.value,
            "completed_at": now.isoformat(),
            "duration_ms": duration_ms,
            "tokens_input": tokens_input,
            "tokens_output": tokens_output,
            "changes": changes.model_dump(mode="json"),
            "verdict": verdict.model_dump(mode="json"),
            "outcome": outcome_model.model_dump(mode="json") if outcome_model else None,
            "metadata": metadata_model.model_dump(mode="json") if metadata_model else None,
        })
        logger.info("Completed unit %s: %s, %s", unit_id, final_status.value, changes.summary)

        publish(self.deps.sink, UnitCompletedEvent.build(
            unit_id, unit.container_id, final_status, changes, verdict,
        ))
        container_status, _ = self.status_computer.propagate(unit.container_id)

        return UnitCompleted(
            unit_id=unit_id,
            status=final_status,
            duration_ms=duration_ms,
            changes=changes,
            verdict=verdict,
            container_status=container_status,
        )

    # === Issues ===

    def log_issue(
        self,
        unit_id: str,
        issue_type: str,
        description: str,
        resolution: str,
        requires_human_review: bool = False,
    ) -> Issue:
        """Record an issue against a unit.

        An issue that requires human review blocks the unit's container
        chain until it is resolved.
        """
        _require_text(description, "issue description")
        _require_text(resolution, "issue resolution")
        kind = parse_choice(ISSUE_TYPE_INPUT, issue_type, "issue type")
        unit = self._load_unit(unit_id)

        issue = Issue(
            id=new_id("issue"),
            unit_id=unit.id,
            container_id=unit.container_id,
            issue_type=kind,
            description=description,
            resolution=resolution,
            requires_human_review=requires_human_review,
            created_at=self.deps.now(),
        )
        self.store.create(issue.id, issue.model_dump(mode="json"))
        logger.info("Logged %s issue %s on unit %s", kind.value, issue.id, unit_id)

        if requires_human_review:
            self.status_computer.propagate(unit.container_id)
        return issue

    def resolve_issue(self, issue_id: str) -> Issue:
        """Mark an issue resolved and lift any block it caused."""
        record = self.store.get(issue_id)
        if record is None or record.get("record_type") != "issue":
            raise NotFoundError("Issue", issue_id)
        issue = Issue.model_validate(record)
        if issue.resolved:
            return issue

        issue = Issue.model_validate(self.store.update(issue_id, {"resolved": True}))
        logger.info("Resolved issue %s", issue_id)
        if issue.requires_human_review:
            self.status_computer.propagate(issue.container_id)
        return issue

    # === Decisions and milestones ===

    def log_decision(
        self,
        unit_id: str,
        category: str,
        question: str,
        chosen: str,
        reasoning: str,
        options_considered: Optional[Sequence[str]] = None,
        trade_offs: Optional[str] = None,
    ) -> Decision:
        """Record a decision taken while working on a unit."""
        _require_text(question, "decision question")
        _require_text(chosen, "chosen option")
        _require_text(reasoning, "decision reasoning")
        kind = parse_choice(DECISION_CATEGORY_INPUT, category, "decision category")
        unit = self._load_unit(unit_id)

        decision = Decision(
            id=new_id("decision"),
            unit_id=unit.id,
            container_id=unit.container_id,
            category=kind,
            question=question,
            options_considered=list(options_considered or []),
            chosen=chosen,
            reasoning=reasoning,
            trade_offs=trade_offs,
            created_at=self.deps.now(),
        )
        self.store.create(decision.id, decision.model_dump(mode="json"))
        logger.info("Logged %s decision %s on unit %s", kind.value, decision.id, unit_id)

        publish(self.deps.sink, DecisionLoggedEvent(
            decision_id=decision.id,
            unit_id=unit.id,
            container_id=unit.container_id,
            question=question,
            chosen=chosen,
            at=decision.created_at,
        ))
        return decision

    def log_milestone(
        self,
        unit_id: str,
        message: str,
        progress: Optional[float] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Milestone:
        """Record a progress note for a unit.

        Args:
            unit_id: Unit the milestone belongs to
            message: Short note, at most MILESTONE_MESSAGE_MAX characters
            progress: Estimated progress in percent (0-100)
            metadata: Free-form extra data

        Raises:
            ValidationError: Empty or overlong message, progress out of range
            NotFoundError: Unknown unit
        """
        _require_text(message, "milestone message")
        if len(message) > MILESTONE_MESSAGE_MAX:
            raise ValidationError(
                f"milestone message cannot exceed {MILESTONE_MESSAGE_MAX} characters"
            )
        if progress is not None and (isinstance(progress, bool) or not 0 <= progress <= 100):
            raise ValidationError(f"progress must be between 0 and 100, got {progress!r}")
        unit = self._load_unit(unit_id)

        milestone = Milestone(
            id=new_id("milestone"),
            unit_id=unit.id,
            container_id=unit.container_id,
            message=message,
            progress=progress,
            metadata=dict(metadata or {}),
            created_at=self.deps.now(),
        )
        self.store.create(milestone.id, milestone.model_dump(mode="json"))
        logger.debug("Logged milestone %s on unit %s", milestone.id, unit_id)
        return milestone

    # === Status ===

    def recompute_container_status(self, container_id: str) -> Tuple[ContainerStatus, RollupMetrics]:
        """Re-derive a container's status and propagate it to its ancestors."""
        return self.status_computer.propagate(container_id)

    def get_context(self, container_id: str) -> ContainerContext:
        """Load a container with its ordered children and subtree records.

        Open issues are oldest first; decisions and milestones newest first.
        """
        container = self.status_computer.load_container(container_id)
        units, child_containers = self.status_computer.load_children(container_id)
        _, subtree = self.status_computer.descendants(container_id)

        open_issues = [
            Issue.model_validate(r)
            for r in self.store.list({"record_type": "issue", "resolved": False})
        ]
        decisions = [
            Decision.model_validate(r)
            for r in self.store.list({"record_type": "decision"})
            if r.get("container_id") in subtree
        ]
        milestones = [
            Milestone.model_validate(r)
            for r in self.store.list({"record_type": "milestone"})
            if r.get("container_id") in subtree
        ]
        return ContainerContext(
            decisions=sorted(decisions, key=lambda d: d.created_at, reverse=True),
            milestones=sorted(milestones, key=lambda m: m.created_at, reverse=True),
            container=container,
            child_containers=sorted(
                child_containers, key=lambda c: (c.number or 0, c.created_at)
            ),
            units=sorted(units, key=lambda u: u.started_at),
            open_issues=sorted(
                (i for i in open_issues if i.container_id in subtree),
                key=lambda i: i.created_at,
            ),
        )

    # === Helpers ===

    def _ensure_phase(self, mission: Container, number: int,
                      phase_name: Optional[str]) -> Tuple[str, bool]:
        """Return the id of a mission's phase, creating it on first use.

        Phase ids are derived from the mission and number, so concurrent
        callers starting the same phase end up on one record.
        """
        if isinstance(number, bool) or not isinstance(number, int) or number < 1:
            raise ValidationError(f"phase must be a positive integer, got {number!r}")

        phase_id = f"{mission.id}-phase-{number}"
        if self.store.get(phase_id) is not None:
            return phase_id, False

        now = self.deps.now()
        phase = Container(
            id=phase_id,
            kind=ContainerKind.PHASE,
            name=phase_name or f"Phase {number}",
            parent_id=mission.id,
            number=number,
            status=ContainerStatus.IN_PROGRESS,
            created_at=now,
            started_at=now,
        )
        try:
            self.store.create(phase_id, phase.model_dump(mode="json"))
        except ValidationError:
            logger.debug("Phase %s created concurrently", phase_id)
            return phase_id, False

        logger.info("Created phase %d (%s) in mission %s", number, phase.name, mission.id)
        return phase_id, True

    def _load_container(self, container_id: str, kind: ContainerKind) -> Container:
        container = self.status_computer.load_container(container_id)
        if container.kind != kind:
            raise ValidationError(
                f"{container_id} is a {container.kind.value.lower()}, not a {kind.value.lower()}"
            )
        return container

    def _load_unit(self, unit_id: str) -> WorkUnit:
        record = self.store.get(unit_id)
        if record is None or record.get("record_type") != "unit":
            raise NotFoundError("Unit", unit_id)
        return WorkUnit.model_validate(record)

    def _root(self, root_path: Optional[Union[str, Path]]) -> Path:
        if root_path:
            return Path(root_path).resolve()
        return (self.deps.root or Path.cwd()).resolve()


def _require_text(value: Optional[str], label: str) -> None:
    if not value or not value.strip():
        raise ValidationError(f"{label} cannot be empty")


def _coerce(model, value, label: str):
    if value is None or isinstance(value, model):
        return value
    try:
        return model.model_validate(dict(value))
    except (PydanticValidationError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {label}: {e}") from e


def _coerce_metadata(value) -> Optional[UnitMetadata]:
    """Accept tests_status in caller form ("passed", "not_run") as well as enum form."""
    if isinstance(value, Mapping) and value.get("tests_status") is not None:
        value = dict(value)
        tests_status = value["tests_status"]
        if isinstance(tests_status, str) and tests_status.lower() in TESTS_STATUS_INPUT:
            value["tests_status"] = TESTS_STATUS_INPUT[tests_status.lower()]
    return _coerce(UnitMetadata, value, "metadata")
