"""
Helpers shared by the deploy and verify workflows.

- ``emit``: report a stage to the caller's progress callback. The callback
  may be a plain function or a coroutine function; either runs inline on the
  caller's task.
- ``run_stage``: await one ledger call and re-raise service errors as
  ``StageFailed`` for the stage being attempted.
- ``request_signature``: hand the transaction to the external signer and
  check what comes back.
"""

from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from ..errors import ApiError, OrchestrationError, SignerRejected, StageFailed
from ..models.chain import ProgressEvent
from ..tx.keys import Signer
from ..tx.message import Transaction

T = TypeVar("T")

ProgressCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


async def emit(callback: Optional[ProgressCallback], stage: Any) -> None:
    if callback is None:
        return
    result = callback(ProgressEvent.at(stage))
    if inspect.isawaitable(result):
        await result


async def run_stage(stage: Any, awaitable: Awaitable[T], *, signature: Optional[str] = None) -> T:
    try:
        return await awaitable
    except OrchestrationError:
        raise
    except ApiError as exc:
        raise StageFailed(stage, exc.message, signature=signature, details={"cause": exc.code}) from exc


async def request_signature(stage: Any, signer: Signer, tx: Transaction) -> Transaction:
    """
    The returned transaction must carry the message that was handed out, with
    every required signature present and valid; otherwise the signer is
    treated as having rejected it.
    """
    expected = tx.message_bytes()
    try:
        signed = await signer(tx)
    except Exception as exc:  # any signer failure is a rejection
        raise SignerRejected(stage, f"Signer rejected the transaction: {exc}") from exc
    if not isinstance(signed, Transaction):
        raise SignerRejected(stage, "Signer did not return a transaction")
    if signed.message_bytes() != expected:
        raise SignerRejected(stage, "Signer altered the transaction message")
    missing = signed.missing_signers()
    if missing:
        raise SignerRejected(stage, "Transaction is missing signatures", details={"missing": missing})
    if not signed.verify_signatures():
        raise SignerRejected(stage, "Transaction carries an invalid signature")
    return signed


__all__ = ["ProgressCallback", "emit", "run_stage", "request_signature"]
