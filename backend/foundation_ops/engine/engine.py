"""
Workflow Engine - Drives gated multi-step processes

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Constructor with registry, store, resolver, dispatcher and audit writer

2. OPERATIONS (each returns a TransitionResult, never raises DomainError)
   - start: New instance at step 1
   - advance: Run the current step's guard and move forward
   - reject: Operator rejection
   - retreat: Step back one step
   - resume / get: Load a recorded snapshot
   - list_instances: Page of instances of the kinds the actor may reach
   - complete_side_effect: Settle a fired side effect
   - retry_side_effect: Re-fire a failed side effect

3. HELPERS
   - _load_for_update: Load and check the caller's version
   - _authorize: Screen permission check for the instance's kind

=============================================================================
DEPENDENCIES
=============================================================================

Repositories:
    - InstanceRepository: Versioned load/save of instances

Guards & Resolvers:
    - AuthorizationEngine: Role may reach the kind's screen
    - TransitionResolver: Pure next-state computation
    - SideEffectDispatcher: Markers and outbox
    - AuditWriter: Append-only audit trail

=============================================================================
"""
from typing import Any, Dict, Iterable, List, Optional

from ..config.settings import settings
from ..domain.models import ActorContext, WorkflowInstance, TransitionResult, Reason
from ..domain.enums import AuditEventType, InstanceStatus, SideEffectKind, SideEffectStatus, WorkflowKind
from ..domain.errors import (
    DomainError, IllegalTransitionError, PermissionDeniedError, StaleInstanceError, ValidationError, ValidationFailure
)
from ..repositories.instance_repo import InstanceRepository
from ..utils.idgen import generate_instance_id
from ..utils.logger import get_logger
from .authorization import AuthorizationEngine
from .audit_writer import AuditWriter
from .definitions import DefinitionRegistry, WorkflowDefinition, get_registry
from .side_effects import MERGED_RESULT_KEYS, SideEffectDispatcher
from .transition_resolver import TransitionResolver

logger = get_logger(__name__)

# Attempts at settling a side effect when a concurrent transition wins the save
SETTLE_RETRIES = 3


class WorkflowEngine:
    """
    Central orchestrator for workflow instances

    Responsibilities:
    - Check the acting role against the kind's screen on every operation
    - Reject stale versions before doing any work
    - Persist transitions with compare-and-swap saves
    - Fire side effects only after the transition is saved
    - Return every domain error as a typed result
    """

    def __init__(
        self,
        registry: Optional[DefinitionRegistry] = None,
        repo: Optional[InstanceRepository] = None,
        authorization: Optional[AuthorizationEngine] = None,
        resolver: Optional[TransitionResolver] = None,
        dispatcher: Optional[SideEffectDispatcher] = None,
        audit: Optional[AuditWriter] = None
    ):
        self.registry = registry or get_registry()
        self.repo = repo or InstanceRepository()
        self.authorization = authorization or AuthorizationEngine()
        self.resolver = resolver or TransitionResolver()
        self.dispatcher = dispatcher or SideEffectDispatcher()
        self.audit = audit or AuditWriter()

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def start(self, kind: Any, initial_data: Dict[str, Any], actor: ActorContext) -> TransitionResult:
        """Create an instance at step 1 and fire step 1's side effect"""
        try:
            definition = self.registry.definition(kind)
            self._check_screen(definition.required_screen.value, actor)

            instance = WorkflowInstance(
                instance_id=generate_instance_id(),
                definition_kind=definition.kind,
                data=dict(initial_data or {}),
                started_by=actor.user_id,
            )
            instance, marker = self.dispatcher.mark_entered(instance, definition.step(1))

            instance = self.repo.create(instance)
            self.audit.write_started(instance, actor)
            if marker:
                self._queue(instance, marker, actor)

            logger.info(
                f"Started {definition.kind.value} instance {instance.instance_id}",
                extra={"instance_id": instance.instance_id, "workflow_kind": definition.kind.value, "actor_id": actor.user_id}
            )
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e)

    def advance(
        self,
        instance_id: str,
        step_input: Dict[str, Any],
        expected_version: int,
        actor: ActorContext
    ) -> TransitionResult:
        """
        Run the current step's guard against data merged with input

        A failing guard blocks the instance and returns VALIDATION_FAILURE
        with every reason; the blocked instance is saved and attached.
        """
        instance = None
        try:
            instance = self._load_for_update(instance_id, expected_version, actor)
            if instance.is_approval_chain:
                raise IllegalTransitionError(
                    "Approval chains move only by decisions",
                    details={"instance_id": instance_id}
                )

            definition = self._definition(instance)
            step_index = instance.current_step_index
            updated, evaluation = self.resolver.advance(instance, definition, step_input or {}, actor.user_id)

            marker = None
            if evaluation.passed:
                updated, marker = self.dispatcher.mark_entered(updated, definition.step(updated.current_step_index))

            instance = self.repo.save(updated)
            self.audit.write_step_result(instance, step_index, evaluation, actor)
            if marker:
                self._queue(instance, marker, actor)

            logger.info(
                f"Step {step_index} {'passed' if evaluation.passed else 'failed'} on {instance_id}",
                extra={"instance_id": instance_id, "step_index": step_index, "status": instance.status.value}
            )

            if not evaluation.passed:
                raise ValidationFailure(
                    f"Step {step_index} failed validation",
                    reasons=evaluation.reasons,
                    details={"instance_id": instance_id, "step_index": step_index}
                )
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e, instance)

    def reject(
        self,
        instance_id: str,
        reason: str,
        expected_version: int,
        actor: ActorContext
    ) -> TransitionResult:
        """Operator rejection of an open instance"""
        instance = None
        try:
            instance = self._load_for_update(instance_id, expected_version, actor)

            updated = self.resolver.reject(instance, Reason(code="REJECTED_BY_OPERATOR", message=reason))
            instance = self.repo.save(updated)
            self.audit.write_rejected(instance, actor)

            logger.info(
                f"Rejected instance {instance_id}",
                extra={"instance_id": instance_id, "actor_id": actor.user_id}
            )
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e, instance)

    def retreat(self, instance_id: str, expected_version: int, actor: ActorContext) -> TransitionResult:
        """Move back one step; side effects already fired are kept"""
        instance = None
        try:
            instance = self._load_for_update(instance_id, expected_version, actor)

            from_step = instance.current_step_index
            instance = self.repo.save(self.resolver.retreat(instance))
            self.audit.write_retreated(instance, from_step, actor)

            logger.info(
                f"Retreated instance {instance_id} to step {instance.current_step_index}",
                extra={"instance_id": instance_id, "step_index": instance.current_step_index}
            )
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e, instance)

    def resume(self, instance_id: str, actor: ActorContext) -> TransitionResult:
        """
        Load a non-terminal instance exactly as recorded

        Nothing is re-fired; pending side effects stay pending. A terminal
        instance is returned attached to an ILLEGAL_TRANSITION error.
        """
        instance = None
        try:
            loaded = self.repo.load(instance_id)
            self._authorize(loaded, actor)
            instance = loaded
            if instance.is_terminal:
                raise IllegalTransitionError(
                    f"Instance {instance_id} is {instance.status.value} and cannot be resumed",
                    details={"instance_id": instance_id, "status": instance.status.value}
                )
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e, instance)

    def get(self, instance_id: str, actor: ActorContext) -> TransitionResult:
        """Read-only load in any status"""
        try:
            instance = self.repo.load(instance_id)
            self._authorize(instance, actor)
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e)

    def permitted_kinds(self, actor: ActorContext, kinds: Optional[Iterable[WorkflowKind]] = None) -> List[WorkflowKind]:
        """Kinds whose screen the actor's role may reach"""
        candidates = self.registry.kinds() if kinds is None else kinds
        return [k for k in candidates if self.authorization.is_permitted(actor.role, self.registry.required_screen(k))]

    def list_instances(
        self,
        actor: ActorContext,
        kind: Optional[WorkflowKind] = None,
        status: Optional[InstanceStatus] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[WorkflowInstance]:
        """Page of instances the actor may see; kinds outside the role's screens are filtered in the query"""
        return self.repo.list_instances(
            kind=kind, status=status, kinds=self.permitted_kinds(actor), skip=skip, limit=limit
        )

    def complete_side_effect(
        self,
        instance_id: str,
        step_index: int,
        succeeded: bool,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        actor: Optional[ActorContext] = None
    ) -> TransitionResult:
        """
        Settle a fired side effect as done or failed

        Called by the side-effect processor (no actor) or an external
        callback (actor checked). The instance does not move. On success the
        kind's allow-listed result keys (generated_document_ids for document
        generation) are merged into data so the step's guard can pass; other
        keys are refused. Only a pending marker can be settled, and settling it
        again the same way is a no-op. A concurrent transition that saves
        first is absorbed by reloading.
        """
        instance = None
        try:
            for attempt in range(SETTLE_RETRIES):
                loaded = self.repo.load(instance_id)
                if actor is not None:
                    self._authorize(loaded, actor)
                instance = loaded

                marker = instance.marker_for(step_index)
                if marker is None:
                    raise IllegalTransitionError(
                        f"No side effect was fired for step {step_index}",
                        details={"instance_id": instance_id, "step_index": step_index}
                    )
                unexpected = sorted(set(result or {}) - MERGED_RESULT_KEYS.get(marker.kind, frozenset()))
                if succeeded and unexpected:
                    raise ValidationError(
                        f"Unexpected result fields for {marker.kind.value}: {', '.join(unexpected)}",
                        details={"instance_id": instance_id, "step_index": step_index, "fields": unexpected}
                    )

                target = SideEffectStatus.DONE if succeeded else SideEffectStatus.FAILED
                if marker.status == target:
                    return TransitionResult.success(instance)
                if marker.status != SideEffectStatus.PENDING:
                    raise IllegalTransitionError(
                        f"Side effect on step {step_index} is already {marker.status.value}",
                        details={"instance_id": instance_id, "step_index": step_index, "status": marker.status.value}
                    )

                settled = self.dispatcher.settle(instance, step_index, succeeded, result, error)
                try:
                    instance = self.repo.save(settled)
                except StaleInstanceError:
                    logger.warning(
                        f"Concurrency conflict settling side effect, retrying (attempt {attempt + 1})",
                        extra={"instance_id": instance_id, "step_index": step_index}
                    )
                    continue

                self.audit.write_side_effect(
                    instance_id, step_index,
                    AuditEventType.SIDE_EFFECT_DONE if succeeded else AuditEventType.SIDE_EFFECT_FAILED,
                    marker.kind, actor, error
                )
                logger.info(
                    f"Side effect {marker.kind.value} on {instance_id} step {step_index}: {target.value}",
                    extra={"instance_id": instance_id, "step_index": step_index, "status": target.value}
                )
                return TransitionResult.success(instance)

            raise StaleInstanceError(
                f"Could not settle side effect on {instance_id} after {SETTLE_RETRIES} attempts",
                details={"instance_id": instance_id, "step_index": step_index}
            )
        except DomainError as e:
            return self._failure(e, instance)

    def retry_side_effect(
        self,
        instance_id: str,
        step_index: int,
        expected_version: int,
        actor: ActorContext
    ) -> TransitionResult:
        """
        Re-fire a failed side effect

        Keyed by (instance_id, step_index): pending or done markers are left
        alone, so repeating the call cannot duplicate the external action.
        """
        instance = None
        try:
            instance = self._load_for_update(instance_id, expected_version, actor)
            if instance.is_terminal:
                raise IllegalTransitionError(
                    f"Instance {instance_id} is {instance.status.value}",
                    details={"instance_id": instance_id, "status": instance.status.value}
                )

            marker = instance.marker_for(step_index)
            if marker is None:
                raise IllegalTransitionError(
                    f"No side effect was fired for step {step_index}",
                    details={"instance_id": instance_id, "step_index": step_index}
                )
            if marker.kind == SideEffectKind.SIGNATURE:
                raise IllegalTransitionError(
                    "Signatures are retried by submitting the sign decision again",
                    details={"instance_id": instance_id, "step_index": step_index}
                )

            if marker.status == SideEffectStatus.PENDING:
                # Outbox upsert is keyed, so this only fills a missing entry
                self.dispatcher.queue(instance_id, marker)
                return TransitionResult.success(instance)
            if marker.status == SideEffectStatus.DONE:
                return TransitionResult.success(instance)

            if marker.attempts >= settings.side_effect_max_attempts:
                raise IllegalTransitionError(
                    f"Side effect on step {step_index} exhausted its {settings.side_effect_max_attempts} attempts",
                    details={"instance_id": instance_id, "step_index": step_index, "attempts": marker.attempts}
                )

            instance = self.repo.save(self.dispatcher.rearm(instance, step_index))
            rearmed = instance.marker_for(step_index)
            self.dispatcher.requeue(instance_id, rearmed)
            self.audit.write_side_effect(
                instance_id, step_index, AuditEventType.SIDE_EFFECT_RETRIED, rearmed.kind, actor
            )

            logger.info(
                f"Retrying side effect on {instance_id} step {step_index} (attempt {rearmed.attempts})",
                extra={"instance_id": instance_id, "step_index": step_index}
            )
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e, instance)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _load_for_update(self, instance_id: str, expected_version: int, actor: ActorContext) -> WorkflowInstance:
        """
        Raises:
            InstanceNotFoundError: Unknown instance
            PermissionDeniedError: Actor may not reach the kind's screen
            StaleInstanceError: Caller's version is not the stored one
        """
        instance = self.repo.load(instance_id)
        self._authorize(instance, actor)
        if instance.version != expected_version:
            raise StaleInstanceError(
                f"Workflow instance {instance_id} is at version {instance.version}, not {expected_version}",
                details={
                    "instance_id": instance_id,
                    "expected_version": expected_version,
                    "current_version": instance.version,
                }
            )
        return instance

    def _definition(self, instance: WorkflowInstance) -> WorkflowDefinition:
        return self.registry.definition(instance.definition_kind)

    def _authorize(self, instance: WorkflowInstance, actor: ActorContext) -> None:
        screen = self.registry.required_screen(instance.definition_kind).value
        try:
            self._check_screen(screen, actor)
        except PermissionDeniedError:
            self.audit.write_access_denied(instance.instance_id, actor, screen)
            raise

    def _check_screen(self, screen: str, actor: ActorContext) -> None:
        if not self.authorization.is_permitted(actor.role, screen):
            logger.warning(
                f"Permission denied: role {actor.role!r} may not reach {screen}",
                extra={"actor_id": actor.user_id, "role": actor.role, "screen": screen}
            )
            raise PermissionDeniedError(
                f"Role {actor.role or '(none)'} may not act on {screen}",
                details={"role": actor.role, "screen": screen}
            )

    def _queue(self, instance: WorkflowInstance, marker, actor: Optional[ActorContext]) -> None:
        self.dispatcher.queue(instance.instance_id, marker)
        self.audit.write_side_effect(
            instance.instance_id, marker.step_index, AuditEventType.SIDE_EFFECT_FIRED, marker.kind, actor
        )

    @staticmethod
    def _failure(error: DomainError, instance: Optional[WorkflowInstance] = None) -> TransitionResult:
        logger.info(
            f"Operation failed: {error.error_code}: {error.message}",
            extra={
                "error_code": error.error_code,
                "instance_id": instance.instance_id if instance else None,
            }
        )
        return TransitionResult.failure(error, instance)
