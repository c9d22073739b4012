from __future__ import annotations

import base64

import pytest
import pytest_asyncio

from playground_services.config import ChainConfig
from playground_services.errors import BadRequest, ConfirmationTimeout, InvalidAccount, SignerRejected, StageFailed
from playground_services.models.chain import NetworkEnvironment, VerifyStage
from playground_services.services.chain import ChainClient
from playground_services.services.verification import (VerificationOrchestrator, encode_verify_data,
                                                       interpret_transaction)
from playground_services.tx.keys import Keypair, pubkey_from_str

from .conftest import RPC_URL, VERIFIER_PROGRAM, FakeLedger

PROOF = bytes(range(64))
INPUTS = ["3", "9"]
DEPLOYED = Keypair.from_seed(b"\x0c" * 32).address


def _tx(*, err=None, logs=(), return_data=None):
    meta = {"err": err, "logMessages": list(logs)}
    if return_data is not None:
        meta["returnData"] = return_data
    return {"slot": 5, "meta": meta}


def _rd(raw: bytes, program: str = VERIFIER_PROGRAM):
    return {"programId": program, "data": [base64.b64encode(raw).decode(), "base64"]}


# ----------------------------
# Outcome decoding
# ----------------------------
@pytest.mark.parametrize(
    "tx, expected",
    [
        (_tx(err={"InstructionError": [0, {"Custom": 1}]}, logs=["Program log: proof verified"]), (False, "execution_error")),
        (_tx(return_data=_rd(b"\x01")), (True, "return_data")),
        (_tx(return_data=_rd(b"\x00"), logs=["Program log: proof verified"]), (False, "return_data")),
        (_tx(return_data=_rd(b"\x01", program="SomeOtherProgram111")), (False, "no_output")),
        (_tx(logs=["Program log: Proof Verified"]), (True, "logs")),
        (_tx(logs=["Program log: proof verified", "Program log: verification failed"]), (False, "logs")),
        (_tx(logs=["proof verified (not from the program)"]), (False, "no_output")),
        (_tx(), (False, "no_output")),
    ],
)
def test_interpret_transaction(tx, expected):
    assert interpret_transaction(tx, VERIFIER_PROGRAM) == expected


def test_encode_verify_data():
    assert encode_verify_data(b"\xaa\xbb", ["1", "2", "3"]) == b"\xaa\xbb1,2,3"
    assert encode_verify_data(b"\xaa", []) == b"\xaa"


# ----------------------------
# Workflow
# ----------------------------
@pytest_asyncio.fixture
async def chain():
    client = ChainClient(ChainConfig(rpc_urls={NetworkEnvironment.DEVNET: RPC_URL}, poll_interval_s=0.01))
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def verifier(chain: ChainClient) -> VerificationOrchestrator:
    return VerificationOrchestrator(chain, verifier_program_id=VERIFIER_PROGRAM, confirm_timeout_s=1.0)


async def test_valid_proof(verifier, router, ledger: FakeLedger, wallet, signer, progress_log, record_progress):
    ledger.results["getTransaction"] = _tx(return_data=_rd(b"\x01"))
    router.post(RPC_URL).mock(side_effect=ledger)

    record = await verifier.verify(DEPLOYED, PROOF, INPUTS, wallet.address, signer, record_progress)

    assert record.is_valid is True
    assert record.reason == "return_data"
    assert record.signature == ledger.sent[0].signature
    assert record.environment is NetworkEnvironment.DEVNET
    assert progress_log == [10, 30, 50, 70, 100]


async def test_instruction_layout(verifier, router, ledger: FakeLedger, wallet, signer):
    router.post(RPC_URL).mock(side_effect=ledger)
    await verifier.verify(DEPLOYED, PROOF, INPUTS, wallet.address, signer)

    msg = ledger.sent[0].message
    (prog, accs, data), = msg.instructions
    assert msg.account_keys[prog] == pubkey_from_str(VERIFIER_PROGRAM)
    assert [msg.account_keys[i] for i in accs] == [pubkey_from_str(DEPLOYED), wallet.public_key]
    assert msg.signers == [wallet.public_key]
    assert data == PROOF + b"3,9"


async def test_execution_error_is_an_invalid_verdict(verifier, router, ledger: FakeLedger, wallet, signer):
    failed = {"InstructionError": [0, {"Custom": 6001}]}
    ledger.results["getSignatureStatuses"] = {
        "context": {"slot": 2},
        "value": [{"slot": 2, "err": failed, "confirmationStatus": "confirmed"}],
    }
    ledger.results["getTransaction"] = _tx(err=failed)
    router.post(RPC_URL).mock(side_effect=ledger)

    record = await verifier.verify(DEPLOYED, PROOF, INPUTS, wallet.address, signer)

    assert record.is_valid is False
    assert record.reason == "execution_error"


async def test_silent_program_is_invalid(verifier, router, ledger: FakeLedger, wallet, signer):
    router.post(RPC_URL).mock(side_effect=ledger)
    record = await verifier.verify(DEPLOYED, PROOF, INPUTS, wallet.address, signer)
    assert (record.is_valid, record.reason) == (False, "no_output")


async def test_missing_confirmed_transaction(verifier, router, ledger: FakeLedger, wallet, signer):
    ledger.results["getTransaction"] = None
    router.post(RPC_URL).mock(side_effect=ledger)

    with pytest.raises(StageFailed) as ei:
        await verifier.verify(DEPLOYED, PROOF, INPUTS, wallet.address, signer)
    assert ei.value.stage is VerifyStage.CONFIRMED
    assert ei.value.signature == ledger.sent[0].signature


async def test_signer_rejection(verifier, router, ledger: FakeLedger, wallet, progress_log, record_progress):
    router.post(RPC_URL).mock(side_effect=ledger)

    async def reject(_tx):
        raise PermissionError("denied")

    with pytest.raises(SignerRejected) as ei:
        await verifier.verify(DEPLOYED, PROOF, INPUTS, wallet.address, reject, record_progress)
    assert ei.value.stage is VerifyStage.SIGNED
    assert progress_log == [10, 30]
    assert ledger.count("sendTransaction") == 0


async def test_confirmation_timeout(chain, router, ledger: FakeLedger, wallet, signer):
    ledger.results["getSignatureStatuses"] = {"context": {"slot": 1}, "value": [None]}
    router.post(RPC_URL).mock(side_effect=ledger)
    verifier = VerificationOrchestrator(chain, verifier_program_id=VERIFIER_PROGRAM, confirm_timeout_s=0.05)

    with pytest.raises(ConfirmationTimeout) as ei:
        await verifier.verify(DEPLOYED, PROOF, INPUTS, wallet.address, signer)
    assert ei.value.signature == ledger.sent[0].signature
    assert ledger.count("getTransaction") == 0


async def test_bad_inputs_fail_before_progress(verifier, router, wallet, signer, progress_log, record_progress):
    route = router.post(RPC_URL)
    with pytest.raises(InvalidAccount):
        await verifier.verify("???", PROOF, INPUTS, wallet.address, signer, record_progress)
    with pytest.raises(BadRequest):
        await verifier.verify(DEPLOYED, b"", INPUTS, wallet.address, signer, record_progress)
    assert progress_log == []
    assert not route.called
