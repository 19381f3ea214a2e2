"""Service modules - External collaborators and background processing"""
from .document_service import DocumentServiceClient
from .signature_service import SignatureProviderClient
from .side_effect_processor import SideEffectProcessor

__all__ = [
    "DocumentServiceClient",
    "SignatureProviderClient",
    "SideEffectProcessor",
]
