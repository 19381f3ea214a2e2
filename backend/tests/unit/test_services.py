"""Tests for the document and signature provider clients"""
import json

import httpx
import pytest

from foundation_ops.domain.enums import SignatureMethod, WorkflowKind
from foundation_ops.domain.errors import DocumentGenerationError, SignatureProviderError
from foundation_ops.domain.models import WorkflowInstance
from foundation_ops.services.document_service import DocumentServiceClient
from foundation_ops.services.signature_service import SignatureProviderClient


@pytest.fixture
def transport(monkeypatch):
    """Route every httpx.Client through a handler set by the test"""
    real_client = httpx.Client
    state = {"requests": []}

    def install(handler):
        def recording(request: httpx.Request) -> httpx.Response:
            state["requests"].append(request)
            return handler(request)

        monkeypatch.setattr(
            httpx, "Client", lambda **kwargs: real_client(transport=httpx.MockTransport(recording), **kwargs)
        )
        return state["requests"]

    return install


@pytest.fixture
def instance():
    return WorkflowInstance(
        instance_id="WFI-abc",
        definition_kind=WorkflowKind.REGISTRATION,
        current_step_index=5,
        data={"foundation_name": "Stiftelsen Norrlands Skog"},
    )


# =============================================================================
# Document service
# =============================================================================

class TestDocumentServiceClient:

    def test_generate(self, transport, instance):
        requests = transport(lambda request: httpx.Response(200, json={"document_ids": ["DOC-1", 2]}))

        ids = DocumentServiceClient(base_url="http://docs.local/").generate(instance, 5)

        assert ids == ["DOC-1", "2"]
        request = requests[0]
        assert str(request.url) == "http://docs.local/documents/generate"
        assert request.headers["Idempotency-Key"] == "WFI-abc:5"
        assert json.loads(request.content)["kind"] == "registration"

    def test_server_error(self, transport, instance):
        transport(lambda request: httpx.Response(503))

        with pytest.raises(DocumentGenerationError) as exc_info:
            DocumentServiceClient(base_url="http://docs.local").generate(instance, 5)

        assert exc_info.value.details["status_code"] == 503

    def test_empty_body(self, transport, instance):
        transport(lambda request: httpx.Response(200, json={"document_ids": []}))

        with pytest.raises(DocumentGenerationError):
            DocumentServiceClient(base_url="http://docs.local").generate(instance, 5)

    def test_transport_error(self, transport, instance):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport(refuse)

        with pytest.raises(DocumentGenerationError):
            DocumentServiceClient(base_url="http://docs.local").generate(instance, 5)


# =============================================================================
# Signature provider
# =============================================================================

class TestSignatureProviderClient:

    def test_signed(self, transport):
        requests = transport(lambda request: httpx.Response(200, json={
            "signature_id": "SIG-1",
            "signer_name": "Cecilia Ek",
            "method": "bankid",
            "signed_at": "2025-03-01T10:00:00Z",
        }))

        signature = SignatureProviderClient(base_url="http://sign.local").verify_and_sign(
            "u-cecilia", ["DOC-1"], idempotency_key="WFI-abc:3"
        )

        assert signature.signature_id == "SIG-1"
        assert signature.method == SignatureMethod.BANKID
        assert signature.signed_at.year == 2025
        assert requests[0].headers["Idempotency-Key"] == "WFI-abc:3"

    def test_declined(self, transport):
        transport(lambda request: httpx.Response(200, json={"status": "declined"}))

        assert SignatureProviderClient(base_url="http://sign.local").verify_and_sign(
            "u-cecilia", ["DOC-1"], idempotency_key="WFI-abc:3"
        ) is None

    def test_provider_error(self, transport):
        transport(lambda request: httpx.Response(500))

        with pytest.raises(SignatureProviderError):
            SignatureProviderClient(base_url="http://sign.local").verify_and_sign(
                "u-cecilia", ["DOC-1"], idempotency_key="WFI-abc:3"
            )

    def test_malformed_record(self, transport):
        transport(lambda request: httpx.Response(200, json={"method": "carrier-pigeon"}))

        with pytest.raises(SignatureProviderError):
            SignatureProviderClient(base_url="http://sign.local").verify_and_sign(
                "u-cecilia", ["DOC-1"], idempotency_key="WFI-abc:3"
            )

    def test_basic_format_timestamp(self, transport):
        transport(lambda request: httpx.Response(200, json={"signature_id": "SIG-2", "signed_at": "20250301T100000Z"}))

        signature = SignatureProviderClient(base_url="http://sign.local").verify_and_sign(
            "u-cecilia", ["DOC-1"], idempotency_key="WFI-abc:3"
        )

        assert (signature.signed_at.month, signature.signed_at.hour) == (3, 10)
        assert signature.signed_at.utcoffset().total_seconds() == 0
