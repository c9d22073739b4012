from __future__ import annotations

import struct
from typing import List

import httpx
import pytest
import pytest_asyncio

from playground_services.config import ChainConfig
from playground_services.errors import (ConfirmationTimeout, InvalidAccount, SignerRejected, StageFailed,
                                        SubmissionFailed)
from playground_services.metrics import Metrics
from playground_services.models.chain import DeployStage, NetworkEnvironment
from playground_services.services.chain import ChainClient
from playground_services.services.deployment import ACCOUNT_METADATA_BYTES, DeploymentOrchestrator
from playground_services.tx.keys import Keypair, pubkey_from_str
from playground_services.tx.message import SYSTEM_PROGRAM, Transaction

from .conftest import RPC_URL, VERIFIER_PROGRAM, FakeLedger

VK = b"\x01verification-key-bytes" * 4


@pytest_asyncio.fixture
async def chain():
    client = ChainClient(ChainConfig(rpc_urls={NetworkEnvironment.DEVNET: RPC_URL}, poll_interval_s=0.01))
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def metrics() -> Metrics:
    return Metrics()


@pytest.fixture
def deployer(chain: ChainClient, metrics: Metrics) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(chain, verifier_program_id=VERIFIER_PROGRAM, confirm_timeout_s=1.0, metrics=metrics)


@pytest.fixture
def mounted(router, ledger: FakeLedger) -> FakeLedger:
    router.post(RPC_URL).mock(side_effect=ledger)
    return ledger


async def test_successful_deploy_reports_every_stage(deployer, mounted, wallet, signer, progress_log, record_progress):
    record = await deployer.deploy(VK, wallet.address, signer, record_progress)

    assert progress_log == [10, 20, 30, 40, 50, 70, 85, 100]
    assert record.environment is NetworkEnvironment.DEVNET
    assert record.signature == mounted.sent[0].signature
    assert record.cost == 890_880 + 6_960 * (len(VK) + ACCOUNT_METADATA_BYTES)
    assert len(pubkey_from_str(record.program_id)) == 32


async def test_transaction_layout(deployer, mounted, wallet, signer):
    record = await deployer.deploy(VK, wallet.address, signer)

    tx: Transaction = mounted.sent[0]
    msg = tx.message
    program = pubkey_from_str(VERIFIER_PROGRAM)
    new_account = pubkey_from_str(record.program_id)

    assert msg.signers == [wallet.public_key, new_account]
    assert tx.verify_signatures()

    (create_prog, create_accs, create_data), (store_prog, store_accs, store_data) = msg.instructions
    assert msg.account_keys[create_prog] == SYSTEM_PROGRAM
    assert [msg.account_keys[i] for i in create_accs] == [wallet.public_key, new_account]
    lamports, space = struct.unpack("<QQ", create_data[4:20])
    assert (lamports, space) == (record.cost, len(VK) + ACCOUNT_METADATA_BYTES)
    assert create_data[20:] == program

    assert msg.account_keys[store_prog] == program
    assert [msg.account_keys[i] for i in store_accs] == [new_account, wallet.public_key]
    assert store_data == VK


async def test_program_ids_are_fresh(deployer, mounted, wallet, signer):
    first = await deployer.deploy(VK, wallet.address, signer)
    second = await deployer.deploy(VK, wallet.address, signer)
    assert first.program_id != second.program_id


async def test_async_progress_callback(deployer, mounted, wallet, signer):
    seen: List[DeployStage] = []

    async def on_progress(event):
        seen.append(event.stage)

    await deployer.deploy(VK, wallet.address, signer, on_progress)
    assert seen == list(DeployStage)


async def test_signer_rejection_stops_before_submission(deployer, mounted, wallet, progress_log, record_progress):
    async def reject(_tx):
        raise RuntimeError("user closed the wallet popup")

    with pytest.raises(SignerRejected) as ei:
        await deployer.deploy(VK, wallet.address, reject, record_progress)

    assert ei.value.stage is DeployStage.SIGNED
    assert ei.value.status_code == 403
    assert progress_log == [10, 20, 30, 40, 50]
    assert mounted.count("sendTransaction") == 0


async def test_signer_returning_unsigned_transaction_is_rejected(deployer, mounted, wallet):
    async def lazy(tx):
        return tx

    with pytest.raises(SignerRejected) as ei:
        await deployer.deploy(VK, wallet.address, lazy)
    assert ei.value.details["missing"] == [wallet.address]
    assert mounted.count("sendTransaction") == 0


async def test_signer_with_wrong_key_is_rejected(deployer, mounted, wallet):
    impostor = Keypair.from_seed(b"\x0b" * 32)

    async def forge(tx):
        tx.add_signature(wallet.public_key, impostor.sign(tx.message_bytes()))
        return tx

    with pytest.raises(SignerRejected):
        await deployer.deploy(VK, wallet.address, forge)


async def test_rent_lookup_failure_names_cost_stage(deployer, router, ledger, wallet, signer, progress_log, record_progress):
    def _fault(_params):
        raise FakeLedger.RpcFault(-32000, "rent unavailable")

    ledger.results["getMinimumBalanceForRentExemption"] = _fault
    router.post(RPC_URL).mock(side_effect=ledger)

    with pytest.raises(StageFailed) as ei:
        await deployer.deploy(VK, wallet.address, signer, record_progress)

    assert ei.value.stage is DeployStage.COST_ESTIMATED
    assert ei.value.details["cause"] == "rpc_error"
    assert progress_log == [10]


async def test_unreachable_node_fails_at_first_call(deployer, router, wallet, signer, progress_log, record_progress):
    router.post(RPC_URL).mock(side_effect=httpx.ConnectError("refused"))
    with pytest.raises(StageFailed) as ei:
        await deployer.deploy(VK, wallet.address, signer, record_progress)
    assert ei.value.details["cause"] == "network_unreachable"
    assert progress_log == [10]


async def test_send_failure_is_submission_failed(deployer, router, ledger, wallet, signer, progress_log, record_progress):
    def _fault(_params):
        raise FakeLedger.RpcFault(-32002, "Transaction simulation failed: insufficient funds")

    ledger.results["sendTransaction"] = _fault
    router.post(RPC_URL).mock(side_effect=ledger)

    with pytest.raises(SubmissionFailed) as ei:
        await deployer.deploy(VK, wallet.address, signer, record_progress)
    assert ei.value.stage is DeployStage.SUBMITTED
    assert ei.value.signature is None
    assert progress_log == [10, 20, 30, 40, 50, 70]


async def test_confirmation_timeout_carries_signature(chain, router, ledger, wallet, signer, progress_log, record_progress):
    ledger.results["getSignatureStatuses"] = {"context": {"slot": 1}, "value": [None]}
    router.post(RPC_URL).mock(side_effect=ledger)
    deployer = DeploymentOrchestrator(chain, verifier_program_id=VERIFIER_PROGRAM, confirm_timeout_s=0.05)

    with pytest.raises(ConfirmationTimeout) as ei:
        await deployer.deploy(VK, wallet.address, signer, record_progress)

    assert ei.value.stage is DeployStage.CONFIRMED
    assert ei.value.signature == ledger.sent[0].signature
    assert ei.value.details["signature"] == ei.value.signature
    assert progress_log == [10, 20, 30, 40, 50, 70, 85]


async def test_on_chain_error_is_submission_failed(deployer, router, ledger, wallet, signer):
    ledger.results["getSignatureStatuses"] = {
        "context": {"slot": 2},
        "value": [{"slot": 2, "err": {"InstructionError": [1, "InvalidAccountData"]}, "confirmationStatus": "processed"}],
    }
    router.post(RPC_URL).mock(side_effect=ledger)

    with pytest.raises(SubmissionFailed) as ei:
        await deployer.deploy(VK, wallet.address, signer)
    assert ei.value.stage is DeployStage.CONFIRMED
    assert ei.value.signature == ledger.sent[0].signature


async def test_invalid_wallet_fails_before_progress(deployer, router, signer, progress_log, record_progress):
    route = router.post(RPC_URL)
    with pytest.raises(InvalidAccount):
        await deployer.deploy(VK, "not a wallet", signer, record_progress)
    assert progress_log == []
    assert not route.called


async def test_outcomes_are_counted(deployer, mounted, metrics: Metrics, wallet, signer):
    await deployer.deploy(VK, wallet.address, signer)

    async def reject(_tx):
        raise RuntimeError("no")

    with pytest.raises(SignerRejected):
        await deployer.deploy(VK, wallet.address, reject)

    sample = metrics.registry.get_sample_value
    assert sample("chain_workflows_total", {"workflow": "deploy", "outcome": "success"}) == 1
    assert sample("chain_workflows_total", {"workflow": "deploy", "outcome": "signer_rejected"}) == 1


async def test_blockhash_without_result_names_build_stage(deployer, router, ledger, wallet, signer, progress_log, record_progress):
    ledger.results["getLatestBlockhash"] = None
    router.post(RPC_URL).mock(side_effect=ledger)

    with pytest.raises(StageFailed) as ei:
        await deployer.deploy(VK, wallet.address, signer, record_progress)

    assert ei.value.stage is DeployStage.TRANSACTION_BUILT
    assert ei.value.details["cause"] == "rpc_error"
    assert progress_log == [10, 20, 30, 40]
    assert ledger.count("sendTransaction") == 0


async def test_non_object_rpc_body_names_failed_stage(deployer, router, wallet, signer, progress_log, record_progress):
    router.post(RPC_URL).mock(return_value=httpx.Response(200, json=["not", "an", "object"]))

    with pytest.raises(StageFailed) as ei:
        await deployer.deploy(VK, wallet.address, signer, record_progress)

    assert ei.value.stage is DeployStage.COST_ESTIMATED
    assert ei.value.details["cause"] == "network_unreachable"
    assert progress_log == [10]


async def test_signer_altering_the_message_is_rejected(deployer, mounted, wallet):
    async def swap_payload(tx):
        prog, accounts, _data = tx.message.instructions[1]
        tx.message.instructions[1] = (prog, accounts, b"something else")
        tx.partial_sign(wallet)
        return tx

    with pytest.raises(SignerRejected) as ei:
        await deployer.deploy(VK, wallet.address, swap_payload)

    assert ei.value.stage is DeployStage.SIGNED
    assert mounted.count("sendTransaction") == 0
