from __future__ import annotations

"""
Ledger-side models: network environments, workflow stages and results.

Stages carry the progress percentage reported to callers when the stage is
reached. Deploy and verify each have their own fixed, ordered sequence ending
at 100.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt


class NetworkEnvironment(str, Enum):
    DEVNET = "devnet"
    TESTNET = "testnet"
    MAINNET = "mainnet-beta"

    @classmethod
    def parse(cls, value: Union[str, "NetworkEnvironment"]) -> "NetworkEnvironment":
        """Accept the canonical names plus the short alias ``mainnet``."""
        if isinstance(value, cls):
            return value
        v = str(value).strip().lower()
        if v == "mainnet":
            v = cls.MAINNET.value
        try:
            return cls(v)
        except ValueError:
            from ..errors import InvalidEnvironment

            raise InvalidEnvironment(
                f"Unknown network environment {value!r}",
                details={"allowed": [e.value for e in cls]},
            ) from None

    @property
    def is_production(self) -> bool:
        return self is NetworkEnvironment.MAINNET


class _Stage(Enum):
    def __init__(self, percent: int, label: str) -> None:
        self.percent = percent
        self.label = label


class DeployStage(_Stage):
    PREPARING = (10, "Preparing deployment")
    COST_ESTIMATED = (20, "Estimating cost")
    ACCOUNT_CREATED = (30, "Creating program account")
    PAYLOAD_ATTACHED = (40, "Preparing verification key")
    TRANSACTION_BUILT = (50, "Building transaction")
    SIGNED = (70, "Requesting signature")
    SUBMITTED = (85, "Sending transaction")
    CONFIRMED = (100, "Confirmed")


class VerifyStage(_Stage):
    PREPARING = (10, "Preparing verification")
    TRANSACTION_BUILT = (30, "Building transaction")
    SIGNED = (50, "Requesting signature")
    SUBMITTED = (70, "Sending transaction")
    CONFIRMED = (100, "Confirmed")


@dataclass(frozen=True)
class ProgressEvent:
    stage: _Stage
    percent: int
    message: str

    @classmethod
    def at(cls, stage: _Stage) -> "ProgressEvent":
        return cls(stage=stage, percent=stage.percent, message=stage.label)


class DeploymentRecord(BaseModel):
    """Outcome of a confirmed verifier deployment."""

    model_config = ConfigDict(frozen=True)

    program_id: str = Field(..., description="Fresh account holding the verification key (base58).")
    signature: str = Field(..., description="Confirmed transaction signature (base58).")
    environment: NetworkEnvironment
    cost: NonNegativeInt = Field(..., description="Estimated cost in lamports.")


class VerificationRecord(BaseModel):
    """Outcome of an on-chain proof verification."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    signature: str
    environment: NetworkEnvironment
    timestamp: NonNegativeInt = Field(default_factory=lambda: int(time.time() * 1000))
    reason: str = Field(..., description="How validity was decided (return_data, logs, error, no_output).")


__all__ = [
    "NetworkEnvironment",
    "DeployStage",
    "VerifyStage",
    "ProgressEvent",
    "DeploymentRecord",
    "VerificationRecord",
]
