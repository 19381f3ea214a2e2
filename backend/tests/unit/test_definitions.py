"""Tests for workflow definitions and approval templates"""
import pytest

from foundation_ops.domain.enums import (
    ApprovalAction, ApprovalMode, Screen, SideEffectKind, WorkflowKind
)
from foundation_ops.domain.errors import UnknownWorkflowKindError, WorkflowDefinitionError
from foundation_ops.engine.definitions import (
    APPROVAL_TEMPLATES,
    REGISTRATION_DEFINITION,
    ApprovalStep,
    DefinitionRegistry,
    StepSpec,
    WorkflowDefinition,
)
from foundation_ops.engine.validators import always_pass


def test_registration_has_seven_steps_with_generation_on_step_five():
    definition = REGISTRATION_DEFINITION

    assert len(definition) == 7
    assert [s.index for s in definition.steps] == list(range(1, 8))
    assert definition.step(5).side_effect == SideEffectKind.DOCUMENT_GENERATION
    assert definition.step(7).terminal
    assert definition.step(8) is None
    assert definition.step(0) is None


def test_definitions_are_immutable():
    with pytest.raises(Exception):
        REGISTRATION_DEFINITION.name = "Changed"


@pytest.mark.parametrize("indexes", [[1, 3], [2, 3], [1, 1]])
def test_step_indexes_must_be_contiguous(indexes):
    with pytest.raises(WorkflowDefinitionError):
        WorkflowDefinition(
            kind=WorkflowKind.REGISTRATION,
            name="Broken",
            required_screen=Screen.FOUNDATIONS,
            steps=[StepSpec(index=i, name=f"Step {i}", guard=always_pass) for i in indexes],
        )


def test_empty_definition_is_rejected():
    with pytest.raises(WorkflowDefinitionError):
        WorkflowDefinition(kind=WorkflowKind.REGISTRATION, name="Empty", required_screen=Screen.FOUNDATIONS, steps=[])


def test_only_last_step_may_be_terminal():
    with pytest.raises(WorkflowDefinitionError):
        WorkflowDefinition(
            kind=WorkflowKind.REGISTRATION,
            name="Broken",
            required_screen=Screen.FOUNDATIONS,
            steps=[
                StepSpec(index=1, name="One", guard=always_pass, terminal=True),
                StepSpec(index=2, name="Two", guard=always_pass),
            ],
        )


def test_template_builds_per_instance_definition(approval_steps):
    template = APPROVAL_TEMPLATES[WorkflowKind.DOCUMENT_APPROVAL]

    definition = template.build(approval_steps)

    assert len(definition) == 3
    assert all(isinstance(s, ApprovalStep) for s in definition.steps)
    assert definition.step(3).action == ApprovalAction.SIGN
    assert definition.step(3).side_effect == SideEffectKind.SIGNATURE
    assert definition.step(1).side_effect is None
    assert definition.step(3).terminal
    assert definition.step(1).name == "Approve by u-anna"


@pytest.mark.parametrize("steps", [
    [],
    [{"action": "approve"}],
    [{"assignee": "u-anna", "action": "notarize"}],
])
def test_template_rejects_bad_steps(steps):
    with pytest.raises(WorkflowDefinitionError):
        APPROVAL_TEMPLATES[WorkflowKind.DOCUMENT_APPROVAL].build(steps)


def test_meeting_signoff_does_not_allow_review():
    template = APPROVAL_TEMPLATES[WorkflowKind.MEETING_SIGNOFF]

    assert template.default_mode == ApprovalMode.PARALLEL
    with pytest.raises(WorkflowDefinitionError):
        template.build([{"assignee": "u-anna", "action": "review"}])


def test_registry_lookups():
    registry = DefinitionRegistry()

    assert registry.definition("registration") is REGISTRATION_DEFINITION
    assert registry.template("meeting_signoff").required_screen == Screen.MEETINGS
    assert registry.required_screen("registration") == Screen.FOUNDATIONS
    assert registry.required_screen("document_approval") == Screen.DOCUMENTS
    assert registry.kinds() == sorted(WorkflowKind, key=lambda k: k.value)


@pytest.mark.parametrize("lookup", ["definition", "template", "required_screen"])
def test_registry_unknown_kind(lookup):
    with pytest.raises(UnknownWorkflowKindError):
        getattr(DefinitionRegistry(), lookup)("grant_application")


def test_registration_has_no_template():
    with pytest.raises(UnknownWorkflowKindError):
        DefinitionRegistry().template("registration")
