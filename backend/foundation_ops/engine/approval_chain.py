"""Approval Chain - Workflows driven by explicit human decisions"""
from typing import Any, Dict, List, Optional

from ..domain.models import (
    ActorContext, ApprovalStepState, DigitalSignatureRecord, PendingAction, TransitionResult, WorkflowInstance
)
from ..domain.enums import ApprovalMode, AuditEventType, DecisionType, InstanceStatus, SideEffectKind
from ..domain.errors import (
    DomainError, IllegalTransitionError, InvalidDecisionError, PermissionDeniedError,
    SideEffectFailure, SignatureDeclinedError, SignatureProviderError, ValidationError,
    WorkflowDefinitionError
)
from ..services.signature_service import SignatureProviderClient
from ..utils.idgen import generate_instance_id, generate_signature_id, side_effect_key
from ..utils.time import utc_now
from ..utils.logger import get_logger
from .definitions import ApprovalStep
from .engine import WorkflowEngine

logger = get_logger(__name__)


class ApprovalChain(WorkflowEngine):
    """
    Document approval and meeting sign-off chains

    - Sequential chains accept a decision only on the current step;
      parallel chains accept them in any order (N-of-N)
    - Any reject ends the chain as rejected, leaving pending steps pending
    - Sign decisions go through the signature provider; a decline leaves the
      instance untouched, a provider failure is recorded on the step's
      marker and re-deciding is the retry
    """

    def __init__(self, signature_client: Optional[SignatureProviderClient] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.signature_client = signature_client or SignatureProviderClient()

    def start_chain(
        self,
        kind: Any,
        data: Dict[str, Any],
        steps: List[Dict[str, Any]],
        actor: ActorContext,
        mode: Optional[Any] = None
    ) -> TransitionResult:
        try:
            template = self.registry.template(kind)
            self._check_screen(template.required_screen.value, actor)

            data = dict(data or {})
            missing = [f for f in template.required_data if not data.get(f)]
            if missing:
                raise ValidationError(
                    f"Missing required data: {', '.join(missing)}",
                    details={"missing": missing}
                )

            try:
                approval_mode = ApprovalMode(mode) if mode else template.default_mode
            except ValueError:
                raise ValidationError(f"Unknown approval mode: {mode}")

            try:
                definition = template.build(steps or [])
            except WorkflowDefinitionError as e:
                raise ValidationError(e.message, details=e.details)

            instance = WorkflowInstance(
                instance_id=generate_instance_id(),
                definition_kind=template.kind,
                data=data,
                started_by=actor.user_id,
                approval_mode=approval_mode,
                approval_steps=[
                    ApprovalStepState(index=s.index, name=s.name, assignee=s.assignee, action=s.action)
                    for s in definition.steps
                    if isinstance(s, ApprovalStep)
                ],
            )
            instance = self.repo.create(instance)
            self.audit.write_started(instance, actor)

            logger.info(
                f"Started {template.kind.value} chain {instance.instance_id} with {len(instance.approval_steps)} steps",
                extra={"instance_id": instance.instance_id, "workflow_kind": template.kind.value}
            )
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e)

    def decide(
        self,
        instance_id: str,
        step_index: int,
        actor_id: str,
        decision: Any,
        expected_version: int,
        actor: ActorContext,
        comment: Optional[str] = None
    ) -> TransitionResult:
        instance = None
        try:
            if actor_id != actor.user_id:
                raise PermissionDeniedError(
                    "Decisions can only be made by the signed-in user",
                    details={"actor_id": actor_id}
                )
            try:
                decision_type = DecisionType(decision)
            except ValueError:
                raise InvalidDecisionError(f"Unknown decision: {decision}")

            loaded = self._load_for_update(instance_id, expected_version, actor)
            if not loaded.is_approval_chain:
                raise IllegalTransitionError(
                    f"Instance {instance_id} is not an approval chain",
                    details={"instance_id": instance_id}
                )
            self.resolver.check_decision(loaded, step_index, actor_id, decision_type)
            instance = loaded

            signature = None
            if decision_type == DecisionType.SIGN:
                armed = self.dispatcher.arm(instance, step_index, SideEffectKind.SIGNATURE)
                try:
                    instance, signature = self._sign(armed, step_index, actor)
                except SignatureProviderError as e:
                    instance = self.repo.save(self.dispatcher.settle(armed, step_index, False, error=e.message))
                    self.audit.write_side_effect(
                        instance_id, step_index, AuditEventType.SIDE_EFFECT_FAILED,
                        SideEffectKind.SIGNATURE, actor, e.message
                    )
                    raise SideEffectFailure(
                        f"Signature provider failed: {e.message}",
                        details={"instance_id": instance_id, "step_index": step_index, **e.details}
                    )

            updated = self.resolver.apply_decision(
                instance, step_index, decision_type, actor_id, comment, signature
            )
            instance = self.repo.save(updated)

            self.audit.write_decision(instance, step_index, decision_type, actor, comment)
            if signature:
                self.audit.write_signature(instance, step_index, signature.signature_id, actor)
            if instance.status == InstanceStatus.REJECTED:
                self.audit.write_rejected(instance, actor)
            elif instance.status == InstanceStatus.COMPLETED:
                self.audit.write_completed(instance, actor)

            logger.info(
                f"Decision {decision_type.value} on {instance_id} step {step_index}",
                extra={"instance_id": instance_id, "step_index": step_index, "status": instance.status.value}
            )
            return TransitionResult.success(instance)
        except DomainError as e:
            return self._failure(e, instance)

    def pending_actions(self, actor: ActorContext) -> List[PendingAction]:
        """
        Undecided steps assigned to the actor in open chains, oldest chain first

        Chains of kinds the actor's role may not reach are left out. A step
        of a sequential chain is listed but not actionable until the chain
        reaches it.
        """
        kinds = self.permitted_kinds(actor, self.registry.chain_kinds())
        actions = []
        for instance in self.repo.list_pending_for_assignee(actor.user_id, kinds=kinds):
            for step in instance.approval_steps:
                if step.assignee != actor.user_id or not step.is_pending:
                    continue
                actions.append(PendingAction(
                    instance_id=instance.instance_id,
                    definition_kind=instance.definition_kind,
                    step_index=step.index,
                    step_name=step.name,
                    action=step.action,
                    document_ids=list(instance.data.get("document_ids") or []),
                    actionable=(
                        instance.approval_mode == ApprovalMode.PARALLEL
                        or step.index == instance.current_step_index
                    ),
                    version=instance.version,
                    created_at=instance.created_at,
                ))
        return actions

    def list_chains(
        self,
        actor: ActorContext,
        document_id: Optional[str] = None,
        status: Optional[InstanceStatus] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[WorkflowInstance]:
        """Chains the actor may see, optionally only those covering one document"""
        return self.repo.list_instances(
            kinds=self.permitted_kinds(actor, self.registry.chain_kinds()),
            status=status,
            document_id=document_id,
            skip=skip,
            limit=limit,
        )

    def _sign(self, armed: WorkflowInstance, step_index: int, actor: ActorContext):
        """
        Ask the provider to sign the chain's documents

        Returns the instance with the step's marker settled as done, and the
        signature record to append. The idempotency key is the step's side
        effect key, so a repeated sign decision cannot produce two signatures.

        Raises:
            SignatureDeclinedError: Signer declined; nothing is saved
            SignatureProviderError: Provider failed
        """
        document_ids = list(armed.data.get("document_ids") or [])
        response = self.signature_client.verify_and_sign(
            actor.user_id, document_ids, idempotency_key=side_effect_key(armed.instance_id, step_index)
        )
        if response is None:
            raise SignatureDeclinedError(
                f"Signature declined by {actor.user_id}",
                details={"instance_id": armed.instance_id, "step_index": step_index}
            )

        signature = DigitalSignatureRecord(
            signature_id=response.signature_id or generate_signature_id(),
            step_index=step_index,
            signer_id=actor.user_id,
            signer_name=response.signer_name or actor.display_name,
            method=response.method,
            document_ids=document_ids,
            signature_data=response.signature_data,
            signed_at=response.signed_at or utc_now(),
        )
        settled = self.dispatcher.settle(
            armed, step_index, True, result={"signature_id": signature.signature_id}
        )
        return settled, signature
