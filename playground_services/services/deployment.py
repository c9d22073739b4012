"""
Deployment workflow: put a verification key on chain in a fresh account.

Stages and the progress reported once each is reached:

    Preparing(10) -> CostEstimated(20) -> AccountCreated(30) -> PayloadAttached(40)
    -> TransactionBuilt(50) -> Signed(70) -> Submitted(85) -> Confirmed(100)

The transaction carries two instructions: a system ``CreateAccount`` funding
``len(vk) + 64`` bytes for the new account (owned by the verifier program),
and a store instruction whose data is the verification key. The new account
signs locally; the wallet signature comes from the injected signer, which is
the only party holding the wallet key.

A failure aborts the remaining stages and raises an ``OrchestrationError``
naming the stage being attempted. No record is returned unless the
transaction is confirmed.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..errors import (ApiError, BadRequest, ConfirmationTimeout, OrchestrationError,
                      StageFailed, SubmissionFailed)
from ..metrics import Metrics
from ..models.chain import DeploymentRecord, DeployStage
from ..tx.keys import Keypair, Signer, pubkey_from_str
from ..tx.message import AccountMeta, Instruction, Transaction, create_account
from .chain import ChainClient, validate_account
from .workflow import ProgressCallback, emit, request_signature, run_stage

log = logging.getLogger(__name__)

ACCOUNT_METADATA_BYTES = 64


class DeploymentOrchestrator:
    def __init__(
        self,
        chain: ChainClient,
        *,
        verifier_program_id: str,
        confirm_timeout_s: Optional[float] = None,
        keypair_factory: Callable[[], Keypair] = Keypair.generate,
        metrics: Optional[Metrics] = None,
    ) -> None:
        self._chain = chain
        self._program = pubkey_from_str(verifier_program_id)
        self._confirm_timeout_s = confirm_timeout_s
        self._new_keypair = keypair_factory
        self._metrics = metrics

    async def deploy(
        self,
        verification_key: bytes,
        wallet: str,
        signer: Signer,
        on_progress: Optional[ProgressCallback] = None,
    ) -> DeploymentRecord:
        wallet_pk = validate_account(wallet)
        if not verification_key:
            raise BadRequest("verification key is empty")
        environment = self._chain.environment

        try:
            record = await self._run(bytes(verification_key), wallet_pk, signer, on_progress)
        except OrchestrationError as exc:
            log.warning(
                "deployment failed",
                extra={"stage": exc.stage.name, "code": exc.code, "environment": environment.value},
            )
            self._count(exc.code)
            raise
        self._count("success")
        log.info(
            "verifier deployed",
            extra={"program_id": record.program_id, "signature": record.signature, "environment": environment.value},
        )
        return record

    async def _run(
        self,
        vk: bytes,
        wallet_pk: bytes,
        signer: Signer,
        on_progress: Optional[ProgressCallback],
    ) -> DeploymentRecord:
        environment = self._chain.environment
        await emit(on_progress, DeployStage.PREPARING)

        space = len(vk) + ACCOUNT_METADATA_BYTES
        funding = await run_stage(DeployStage.COST_ESTIMATED, self._chain.rent_exempt_minimum(space))
        await emit(on_progress, DeployStage.COST_ESTIMATED)

        account = self._new_keypair()
        await emit(on_progress, DeployStage.ACCOUNT_CREATED)

        instructions = [
            create_account(
                from_pubkey=wallet_pk,
                new_pubkey=account.public_key,
                lamports=funding,
                space=space,
                owner=self._program,
            ),
            Instruction(
                program_id=self._program,
                accounts=(
                    AccountMeta(account.public_key, is_signer=False, is_writable=True),
                    AccountMeta(wallet_pk, is_signer=True, is_writable=False),
                ),
                data=vk,
            ),
        ]
        await emit(on_progress, DeployStage.PAYLOAD_ATTACHED)

        blockhash, _ = await run_stage(DeployStage.TRANSACTION_BUILT, self._chain.latest_blockhash())
        try:
            tx = Transaction.build(fee_payer=wallet_pk, instructions=instructions, recent_blockhash=blockhash)
            tx.partial_sign(account)
        except ValueError as exc:
            raise StageFailed(DeployStage.TRANSACTION_BUILT, str(exc)) from exc
        await emit(on_progress, DeployStage.TRANSACTION_BUILT)

        signed = await request_signature(DeployStage.SIGNED, signer, tx)
        await emit(on_progress, DeployStage.SIGNED)

        try:
            signature = await self._chain.send_transaction(signed)
        except ApiError as exc:
            raise SubmissionFailed(DeployStage.SUBMITTED, exc.message, details={"cause": exc.code}) from exc
        await emit(on_progress, DeployStage.SUBMITTED)

        status = await run_stage(
            DeployStage.CONFIRMED,
            self._chain.confirm_signature(signature, timeout_s=self._confirm_timeout_s),
            signature=signature,
        )
        if status is None:
            raise ConfirmationTimeout(
                DeployStage.CONFIRMED,
                "Transaction was not confirmed in time",
                signature=signature,
            )
        if status.get("err") is not None:
            raise SubmissionFailed(
                DeployStage.CONFIRMED,
                "Transaction failed on chain",
                signature=signature,
                details={"err": status["err"]},
            )
        await emit(on_progress, DeployStage.CONFIRMED)

        return DeploymentRecord(
            program_id=account.address,
            signature=signature,
            environment=environment,
            cost=funding,
        )

    def _count(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.workflow("deploy", outcome)


__all__ = ["DeploymentOrchestrator", "ACCOUNT_METADATA_BYTES"]
