"""
Verification workflow: submit a proof to a deployed verifier and decide
validity from what the ledger recorded.

Stages and the progress reported once each is reached:

    Preparing(10) -> TransactionBuilt(30) -> Signed(50) -> Submitted(70) -> Confirmed(100)

Instruction layout: accounts ``[deployed verifier account (read-only),
wallet (signer)]``; data ``proof || utf8(",".join(public_inputs))``.

Outcome decoding (``interpret_transaction``) looks at the confirmed
transaction, in this order:

1. ``meta.err`` set                      -> invalid (``"execution_error"``)
2. return data from the verifier program -> first byte == 1 (``"return_data"``)
3. verifier log markers                  -> last marker wins (``"logs"``)
4. nothing from the verifier             -> invalid (``"no_output"``)
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Any, Dict, Optional, Sequence, Tuple

from ..errors import ApiError, BadRequest, ConfirmationTimeout, OrchestrationError, StageFailed, SubmissionFailed
from ..metrics import Metrics
from ..models.chain import VerificationRecord, VerifyStage
from ..tx.keys import Signer, pubkey_from_str
from ..tx.message import AccountMeta, Instruction, Transaction
from .chain import ChainClient, validate_account
from .workflow import ProgressCallback, emit, request_signature, run_stage

log = logging.getLogger(__name__)

VALID_MARKERS = ("proof verified", "proof valid", "verification succeeded")
INVALID_MARKERS = ("proof invalid", "proof rejected", "verification failed")


def encode_verify_data(proof: bytes, public_inputs: Sequence[str]) -> bytes:
    return bytes(proof) + ",".join(str(x) for x in public_inputs).encode("utf-8")


def _return_data(meta: Dict[str, Any], program_id: str) -> Optional[bytes]:
    rd = meta.get("returnData")
    if not isinstance(rd, dict) or rd.get("programId") != program_id:
        return None
    data = rd.get("data")
    # RPC shape: ["<base64>", "base64"]
    if isinstance(data, (list, tuple)) and data:
        data = data[0]
    if not isinstance(data, str):
        return None
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return None


def _log_verdict(logs: Sequence[str]) -> Optional[bool]:
    verdict: Optional[bool] = None
    for line in logs:
        if not isinstance(line, str) or not line.startswith("Program log:"):
            continue
        text = line[len("Program log:"):].strip().lower()
        if any(m in text for m in INVALID_MARKERS):
            verdict = False
        elif any(m in text for m in VALID_MARKERS):
            verdict = True
    return verdict


def interpret_transaction(tx: Dict[str, Any], verifier_program_id: str) -> Tuple[bool, str]:
    """Return ``(is_valid, reason)`` for a confirmed verify transaction."""
    meta = tx.get("meta") or {}
    if meta.get("err") is not None:
        return False, "execution_error"
    raw = _return_data(meta, verifier_program_id)
    if raw:
        return raw[0] == 1, "return_data"
    verdict = _log_verdict(meta.get("logMessages") or [])
    if verdict is not None:
        return verdict, "logs"
    return False, "no_output"


class VerificationOrchestrator:
    def __init__(
        self,
        chain: ChainClient,
        *,
        verifier_program_id: str,
        confirm_timeout_s: Optional[float] = None,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._chain = chain
        self._program_id = verifier_program_id
        self._program = pubkey_from_str(verifier_program_id)
        self._confirm_timeout_s = confirm_timeout_s
        self._metrics = metrics

    async def verify(
        self,
        program_id: str,
        proof: bytes,
        public_inputs: Sequence[str],
        wallet: str,
        signer: Signer,
        on_progress: Optional[ProgressCallback] = None,
    ) -> VerificationRecord:
        """
        Parameters
        ----------
        program_id : str
            Account created by a previous deployment (holds the verification key).
        proof : bytes
            Serialized proof.
        public_inputs : Sequence[str]
            Public inputs, joined with "," into the instruction data.
        wallet : str
            Fee payer and signer (base58).
        signer : Signer
            External ``async (Transaction) -> Transaction``.
        """
        verifier_account = validate_account(program_id)
        wallet_pk = validate_account(wallet)
        if not proof:
            raise BadRequest("proof is empty")

        try:
            record = await self._run(verifier_account, bytes(proof), public_inputs, wallet_pk, signer, on_progress)
        except OrchestrationError as exc:
            log.warning("verification failed", extra={"stage": exc.stage.name, "code": exc.code})
            self._count(exc.code)
            raise
        self._count("valid" if record.is_valid else "invalid")
        log.info(
            "proof verification recorded",
            extra={"signature": record.signature, "is_valid": record.is_valid, "reason": record.reason},
        )
        return record

    async def _run(
        self,
        verifier_account: bytes,
        proof: bytes,
        public_inputs: Sequence[str],
        wallet_pk: bytes,
        signer: Signer,
        on_progress: Optional[ProgressCallback],
    ) -> VerificationRecord:
        environment = self._chain.environment
        await emit(on_progress, VerifyStage.PREPARING)

        ix = Instruction(
            program_id=self._program,
            accounts=(
                AccountMeta(verifier_account, is_signer=False, is_writable=False),
                AccountMeta(wallet_pk, is_signer=True, is_writable=False),
            ),
            data=encode_verify_data(proof, public_inputs),
        )
        blockhash, _ = await run_stage(VerifyStage.TRANSACTION_BUILT, self._chain.latest_blockhash())
        try:
            tx = Transaction.build(fee_payer=wallet_pk, instructions=[ix], recent_blockhash=blockhash)
        except ValueError as exc:
            raise StageFailed(VerifyStage.TRANSACTION_BUILT, str(exc)) from exc
        await emit(on_progress, VerifyStage.TRANSACTION_BUILT)

        signed = await request_signature(VerifyStage.SIGNED, signer, tx)
        await emit(on_progress, VerifyStage.SIGNED)

        try:
            signature = await self._chain.send_transaction(signed)
        except ApiError as exc:
            raise SubmissionFailed(VerifyStage.SUBMITTED, exc.message, details={"cause": exc.code}) from exc
        await emit(on_progress, VerifyStage.SUBMITTED)

        # An execution error is a verdict here, not a submission failure.
        status = await run_stage(
            VerifyStage.CONFIRMED,
            self._chain.confirm_signature(signature, timeout_s=self._confirm_timeout_s),
            signature=signature,
        )
        if status is None:
            raise ConfirmationTimeout(
                VerifyStage.CONFIRMED,
                "Transaction was not confirmed in time",
                signature=signature,
            )
        confirmed = await run_stage(
            VerifyStage.CONFIRMED, self._chain.get_transaction(signature), signature=signature
        )
        if not confirmed:
            raise StageFailed(
                VerifyStage.CONFIRMED,
                "Confirmed transaction could not be fetched",
                signature=signature,
            )
        is_valid, reason = interpret_transaction(confirmed, self._program_id)
        await emit(on_progress, VerifyStage.CONFIRMED)

        return VerificationRecord(
            is_valid=is_valid,
            signature=signature,
            environment=environment,
            timestamp=int(time.time() * 1000),
            reason=reason,
        )

    def _count(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.workflow("verify", outcome)


__all__ = [
    "VerificationOrchestrator",
    "interpret_transaction",
    "encode_verify_data",
    "VALID_MARKERS",
    "INVALID_MARKERS",
]
