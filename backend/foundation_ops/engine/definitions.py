"""
Workflow Definitions - Immutable step templates per workflow kind

Definitions are validated when they are constructed. A malformed definition
is a programmer error and fails at import / startup, never while an
instance is being driven.
"""
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..domain.enums import ApprovalAction, ApprovalMode, Screen, SideEffectKind, WorkflowKind
from ..domain.errors import UnknownWorkflowKindError, WorkflowDefinitionError
from ..domain.models import StepEvaluation
from .validators import (
    ComplianceChecker,
    always_pass,
    board_members_valid,
    contact_person_valid,
    required_fields,
    signatures_complete,
)


class StepSpec(BaseModel):
    """One step of a workflow definition"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    index: int
    name: str
    guard: Callable[[Dict[str, Any]], StepEvaluation] = Field(..., exclude=True)
    side_effect: Optional[SideEffectKind] = None
    terminal: bool = False


class ApprovalStep(StepSpec):
    """Step decided by a named party rather than by data validation"""

    assignee: str
    action: ApprovalAction
    guard: Callable[[Dict[str, Any]], StepEvaluation] = Field(always_pass, exclude=True)


class WorkflowDefinition(BaseModel):
    """Ordered, immutable sequence of steps"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: WorkflowKind
    name: str
    required_screen: Screen
    steps: Sequence[StepSpec]

    @model_validator(mode="after")
    def _check_steps(self) -> "WorkflowDefinition":
        if not self.steps:
            raise WorkflowDefinitionError(f"Definition {self.kind.value} has no steps")

        indexes = [s.index for s in self.steps]
        if indexes != list(range(1, len(self.steps) + 1)):
            raise WorkflowDefinitionError(
                f"Definition {self.kind.value} step indexes must be unique and contiguous from 1",
                details={"indexes": indexes}
            )

        for step in self.steps[:-1]:
            if step.terminal:
                raise WorkflowDefinitionError(
                    f"Definition {self.kind.value} marks step {step.index} terminal but it is not last"
                )

        if not all(callable(s.guard) for s in self.steps):
            raise WorkflowDefinitionError(f"Definition {self.kind.value} has a step without a guard")
        return self

    def __len__(self) -> int:
        return len(self.steps)

    def step(self, index: int) -> Optional[StepSpec]:
        """Step at a 1-based index, None when out of range"""
        if 1 <= index <= len(self.steps):
            return self.steps[index - 1]
        return None


class ApprovalTemplate(BaseModel):
    """Template an approval chain is instantiated from"""
    model_config = ConfigDict(frozen=True)

    kind: WorkflowKind
    name: str
    required_screen: Screen
    default_mode: ApprovalMode
    allowed_actions: FrozenSet[ApprovalAction]
    required_data: Sequence[str] = ("document_ids",)

    def build(self, steps: List[Dict[str, Any]]) -> WorkflowDefinition:
        """
        Per-instance definition from the caller's step list

        Raises:
            WorkflowDefinitionError: Empty list, missing assignee, or an action
                this template does not allow
        """
        if not steps:
            raise WorkflowDefinitionError("An approval chain needs at least one step")

        built = []
        for position, raw in enumerate(steps, start=1):
            assignee = raw.get("assignee")
            if not assignee:
                raise WorkflowDefinitionError(f"Approval step {position} has no assignee")
            try:
                action = ApprovalAction(raw.get("action"))
            except ValueError:
                raise WorkflowDefinitionError(
                    f"Approval step {position} has unknown action {raw.get('action')!r}"
                )
            if action not in self.allowed_actions:
                raise WorkflowDefinitionError(
                    f"Action {action.value} is not allowed in {self.kind.value}",
                    details={"allowed": sorted(a.value for a in self.allowed_actions)}
                )
            built.append(ApprovalStep(
                index=position,
                name=raw.get("name") or f"{action.value.title()} by {assignee}",
                assignee=assignee,
                action=action,
                side_effect=SideEffectKind.SIGNATURE if action == ApprovalAction.SIGN else None,
                terminal=position == len(steps),
            ))

        return WorkflowDefinition(
            kind=self.kind,
            name=self.name,
            required_screen=self.required_screen,
            steps=built,
        )


# ============================================================================
# Registered definitions
# ============================================================================

REGISTRATION_DEFINITION = WorkflowDefinition(
    kind=WorkflowKind.REGISTRATION,
    name="Foundation registration",
    required_screen=Screen.FOUNDATIONS,
    steps=[
        StepSpec(
            index=1,
            name="Basic information",
            guard=required_fields("foundation_name", "purpose", "initial_capital"),
        ),
        StepSpec(index=2, name="Board members", guard=board_members_valid),
        StepSpec(index=3, name="Contact person", guard=contact_person_valid),
        StepSpec(index=4, name="Compliance check", guard=ComplianceChecker()),
        StepSpec(
            index=5,
            name="Document generation",
            guard=required_fields("generated_document_ids"),
            side_effect=SideEffectKind.DOCUMENT_GENERATION,
        ),
        StepSpec(index=6, name="Digital signatures", guard=signatures_complete),
        StepSpec(
            index=7,
            name="Authority submission",
            guard=required_fields("submission_reference"),
            terminal=True,
        ),
    ],
)

APPROVAL_TEMPLATES: Dict[WorkflowKind, ApprovalTemplate] = {
    WorkflowKind.DOCUMENT_APPROVAL: ApprovalTemplate(
        kind=WorkflowKind.DOCUMENT_APPROVAL,
        name="Document approval",
        required_screen=Screen.DOCUMENTS,
        default_mode=ApprovalMode.SEQUENTIAL,
        allowed_actions=frozenset({ApprovalAction.REVIEW, ApprovalAction.APPROVE, ApprovalAction.SIGN}),
    ),
    WorkflowKind.MEETING_SIGNOFF: ApprovalTemplate(
        kind=WorkflowKind.MEETING_SIGNOFF,
        name="Meeting minutes sign-off",
        required_screen=Screen.MEETINGS,
        default_mode=ApprovalMode.PARALLEL,
        allowed_actions=frozenset({ApprovalAction.APPROVE, ApprovalAction.SIGN}),
    ),
}


class DefinitionRegistry:
    """Lookup of definitions and approval templates by kind"""

    def __init__(
        self,
        definitions: Optional[Dict[WorkflowKind, WorkflowDefinition]] = None,
        templates: Optional[Dict[WorkflowKind, ApprovalTemplate]] = None
    ):
        self._definitions = dict(definitions if definitions is not None else {
            REGISTRATION_DEFINITION.kind: REGISTRATION_DEFINITION,
        })
        self._templates = dict(templates if templates is not None else APPROVAL_TEMPLATES)

    def definition(self, kind: Any) -> WorkflowDefinition:
        try:
            return self._definitions[WorkflowKind(kind)]
        except (ValueError, KeyError):
            raise UnknownWorkflowKindError(
                f"No workflow definition for kind {kind}",
                details={"kind": str(kind)}
            )

    def template(self, kind: Any) -> ApprovalTemplate:
        try:
            return self._templates[WorkflowKind(kind)]
        except (ValueError, KeyError):
            raise UnknownWorkflowKindError(
                f"No approval chain template for kind {kind}",
                details={"kind": str(kind)}
            )

    def required_screen(self, kind: Any) -> Screen:
        """Screen guarding instances of a kind, whether definition or template"""
        try:
            workflow_kind = WorkflowKind(kind)
        except ValueError:
            raise UnknownWorkflowKindError(f"Unknown workflow kind {kind}", details={"kind": str(kind)})
        if workflow_kind in self._definitions:
            return self._definitions[workflow_kind].required_screen
        return self.template(workflow_kind).required_screen

    def kinds(self) -> List[WorkflowKind]:
        return sorted(set(self._definitions) | set(self._templates), key=lambda k: k.value)

    def chain_kinds(self) -> List[WorkflowKind]:
        """Kinds run as approval chains"""
        return sorted(self._templates, key=lambda k: k.value)


_registry: Optional[DefinitionRegistry] = None


def get_registry() -> DefinitionRegistry:
    global _registry
    if _registry is None:
        _registry = DefinitionRegistry()
    return _registry
