"""
Pydantic models shared by services, routers and the CLI.
"""

from .artifacts import GalleryEntry, GalleryOrder, SharedCircuit, StoredVia, UploadResult
from .chain import (
    DeploymentRecord,
    DeployStage,
    NetworkEnvironment,
    ProgressEvent,
    VerificationRecord,
    VerifyStage,
)

__all__ = [
    "SharedCircuit",
    "GalleryEntry",
    "GalleryOrder",
    "StoredVia",
    "UploadResult",
    "NetworkEnvironment",
    "DeployStage",
    "VerifyStage",
    "ProgressEvent",
    "DeploymentRecord",
    "VerificationRecord",
]
