"""Signature Service - Client for the signature / identity-verification provider"""
from datetime import datetime
from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError, field_validator

from ..config.settings import settings
from ..domain.enums import SignatureMethod
from ..domain.errors import SignatureProviderError
from ..utils.logger import get_logger
from ..utils.time import parse_iso

logger = get_logger(__name__)


class ProviderSignature(BaseModel):
    """Signature as returned by the provider"""
    model_config = ConfigDict(extra="ignore")

    signature_id: Optional[str] = None
    signer_name: Optional[str] = None
    method: SignatureMethod = SignatureMethod.BANKID
    signature_data: Optional[str] = None
    signed_at: Optional[datetime] = None

    @field_validator("signed_at", mode="before")
    @classmethod
    def _parse_signed_at(cls, value: Any) -> Any:
        # Provider sends basic as well as extended ISO 8601
        if isinstance(value, str) and value:
            return parse_iso(value)
        return value


class SignatureProviderClient:
    """
    verify_and_sign(signer_id, document_ids) -> signature, or None if declined

    A decline is the signer's answer, not a failure. Failures (transport,
    5xx, malformed body) raise SignatureProviderError.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.signature_provider_url).rstrip("/")
        self.timeout = timeout or settings.external_timeout_seconds

    def verify_and_sign(
        self,
        signer_id: str,
        document_ids: List[str],
        idempotency_key: str
    ) -> Optional[ProviderSignature]:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                logger.info(f"Requesting signature from {signer_id} ({idempotency_key})")
                response = client.post(
                    f"{self.base_url}/signatures",
                    json={"signer_id": signer_id, "document_ids": document_ids},
                    headers={"Idempotency-Key": idempotency_key},
                )
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as e:
            raise SignatureProviderError(
                f"Signature provider returned {e.response.status_code}",
                details={"signer_id": signer_id, "status_code": e.response.status_code}
            )
        except (httpx.HTTPError, ValueError) as e:
            raise SignatureProviderError(
                f"Signature provider call failed: {e}",
                details={"signer_id": signer_id}
            )

        if not isinstance(body, dict):
            raise SignatureProviderError("Signature provider returned a malformed body")

        if body.get("status") == "declined":
            logger.info(f"Signature declined by {signer_id}")
            return None

        try:
            return ProviderSignature.model_validate(body)
        except PydanticValidationError as e:
            raise SignatureProviderError(
                f"Signature provider returned an invalid record: {e.error_count()} errors",
                details={"signer_id": signer_id}
            )
