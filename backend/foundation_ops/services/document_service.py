"""Document Service - Client for the document generation service"""
from typing import Any, Dict, List, Optional

import httpx

from ..config.settings import settings
from ..domain.errors import DocumentGenerationError
from ..domain.models import WorkflowInstance
from ..utils.idgen import side_effect_key
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DocumentServiceClient:
    """
    Generates the registration documents for an instance snapshot

    Contract: POST /documents/generate -> {"document_ids": [...]}. The
    idempotency key lets the service return the same documents when a
    request is repeated for the same step.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.document_service_url).rstrip("/")
        self.timeout = timeout or settings.external_timeout_seconds

    def generate(self, instance: WorkflowInstance, step_index: int) -> List[str]:
        """
        Returns:
            Generated document ids

        Raises:
            DocumentGenerationError: Transport failure, non-2xx response or malformed body
        """
        key = side_effect_key(instance.instance_id, step_index)
        payload: Dict[str, Any] = {
            "instance_id": instance.instance_id,
            "kind": instance.definition_kind.value,
            "data": instance.data,
        }

        try:
            with httpx.Client(timeout=self.timeout) as client:
                logger.info(
                    f"Requesting documents for {instance.instance_id}",
                    extra={"instance_id": instance.instance_id, "step_index": step_index}
                )
                response = client.post(
                    f"{self.base_url}/documents/generate",
                    json=payload,
                    headers={"Idempotency-Key": key},
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            raise DocumentGenerationError(
                f"Document service returned {e.response.status_code}",
                details={"instance_id": instance.instance_id, "status_code": e.response.status_code}
            )
        except (httpx.HTTPError, ValueError) as e:
            raise DocumentGenerationError(
                f"Document service call failed: {e}",
                details={"instance_id": instance.instance_id}
            )

        document_ids = body.get("document_ids") if isinstance(body, dict) else None
        if not isinstance(document_ids, list) or not document_ids:
            raise DocumentGenerationError(
                "Document service returned no document ids",
                details={"instance_id": instance.instance_id}
            )
        return [str(d) for d in document_ids]
