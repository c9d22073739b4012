"""
Command-line interface for ZK Playground Services.

Commands:
  - publish   : store a circuit file and list it in the gallery
  - fetch     : resolve a shared circuit by cid
  - pin       : ask the IPFS provider to pin a cid
  - gallery   : list gallery entries (recent | popular | all)
  - search    : search the gallery
  - like      : like a gallery entry
  - estimate  : deployment cost estimate for a payload size
  - balance   : account balance
  - airdrop   : request test funds (not on mainnet-beta)
  - explorer  : explorer link for a transaction or address
  - deploy    : deploy a verification key, signing with a local keypair file
  - verify    : verify a proof on chain, signing with a local keypair file

Usage:
  playground-services [--network devnet] <command> [options]
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer

from .config import Settings
from .errors import ApiError
from .models.artifacts import GalleryEntry, GalleryOrder, SharedCircuit
from .models.chain import ProgressEvent
from .services import Services
from .services.chain import lamports_to_sol
from .tx.keys import Keypair, keypair_signer

T = TypeVar("T")

app = typer.Typer(add_completion=False, help="ZK Playground Services CLI")


@dataclass
class AppCtx:
    settings: Settings
    network: Optional[str] = None


_ctx: Optional[AppCtx] = None


@app.callback()
def main(
    network: Optional[str] = typer.Option(None, "--network", "-n", help="devnet | testnet | mainnet-beta"),
):
    """
    Shared options for all subcommands.
    """
    global _ctx
    _ctx = AppCtx(settings=Settings(), network=network)


def _run(fn: Callable[[Services], Awaitable[T]]) -> T:
    """Build services, run ``fn``, close services. ApiErrors exit with status 1."""
    ctx = _ctx or AppCtx(settings=Settings())

    async def _go() -> T:
        services = Services.from_settings(ctx.settings)
        try:
            if ctx.network:
                services.chain.set_environment(ctx.network)
            return await fn(services)
        finally:
            await services.aclose()

    try:
        return asyncio.run(_go())
    except ApiError as exc:
        typer.echo(f"error: {exc.code}: {exc.message}", err=True)
        raise typer.Exit(code=1)


def _print_entries(entries: List[GalleryEntry]) -> None:
    if not entries:
        typer.echo("(no entries)")
        return
    for e in entries:
        tags = ",".join(e.tags)
        typer.echo(f"{e.cid}  views={e.views} likes={e.likes}  {e.title}" + (f"  [{tags}]" if tags else ""))


def _print_progress(event: ProgressEvent) -> None:
    typer.echo(f"[{event.percent:>3}%] {event.message}")


def load_keypair_file(path: Path) -> Keypair:
    """Read a keypair file: a JSON array of 64 (secret||public) or 32 (seed) byte values."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(f"cannot read keypair file: {exc}") from exc
    if not isinstance(data, list) or len(data) not in (32, 64):
        raise typer.BadParameter("keypair file must hold a JSON array of 32 or 64 bytes")
    return Keypair.from_seed(bytes(data[:32]))


# ------------------------------ Circuits -------------------------------------


@app.command("publish")
def publish(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Circuit source file"),
    title: str = typer.Option(..., "--title", "-t"),
    description: str = typer.Option("", "--description", "-d"),
    author: str = typer.Option("", "--author", "-a"),
    tags: str = typer.Option("", "--tags", help="Comma-separated tags"),
):
    """
    Store a circuit (IPFS first, local fallback) and list it in the gallery.
    """
    circuit = SharedCircuit(
        title=title,
        description=description,
        author=author,
        tags=[t.strip() for t in tags.split(",") if t.strip()],
        code=source.read_text(encoding="utf-8"),
    )

    async def _go(s: Services):
        result = await s.content.upload(circuit)
        await s.gallery.add(circuit.with_cid(result.cid))
        return result

    result = _run(_go)
    typer.echo(f"cid: {result.cid}")
    typer.echo(f"via: {result.via.value}")
    typer.echo(f"url: {result.url}")


@app.command("fetch")
def fetch(
    cid: str = typer.Argument(...),
    bypass_cache: bool = typer.Option(False, "--bypass-cache", help="Skip the in-process cache"),
):
    """
    Resolve a shared circuit and print it as JSON.
    """
    circuit = _run(lambda s: s.content.download(cid, bypass_cache=bypass_cache))
    typer.echo(circuit.model_dump_json(indent=2))


@app.command("pin")
def pin(cid: str = typer.Argument(...)):
    """
    Ask the IPFS provider to pin ``cid``.
    """
    ok = _run(lambda s: s.content.pin(cid))
    typer.echo("pinned" if ok else "pin failed")
    if not ok:
        raise typer.Exit(code=1)


# ------------------------------ Gallery --------------------------------------


@app.command("gallery")
def gallery(
    order: GalleryOrder = typer.Option(GalleryOrder.RECENT, "--order", "-o"),
    limit: int = typer.Option(20, "--limit", "-l", min=0),
):
    _print_entries(_run(lambda s: s.gallery.list(order, limit)))


@app.command("search")
def search(query: str = typer.Argument(...)):
    _print_entries(_run(lambda s: s.gallery.search(query)))


@app.command("like")
def like(cid: str = typer.Argument(...)):
    entry = _run(lambda s: s.gallery.increment_likes(cid))
    if entry is None:
        typer.echo(f"not in gallery: {cid}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{entry.cid} likes={entry.likes}")


# ------------------------------ Network --------------------------------------


@app.command("estimate")
def estimate(size: int = typer.Argument(..., min=0, help="Payload size in bytes")):
    """
    Deployment cost estimate for a payload of ``size`` bytes.
    """
    lamports = _run(lambda s: s.chain.estimate_cost(size))
    typer.echo(f"{lamports} lamports ({lamports_to_sol(lamports):.9f} SOL)")


@app.command("balance")
def balance(account: str = typer.Argument(...)):
    lamports = _run(lambda s: s.chain.get_balance(account))
    typer.echo(f"{lamports} lamports ({lamports_to_sol(lamports):.9f} SOL)")


@app.command("airdrop")
def airdrop(
    account: str = typer.Argument(...),
    sol: float = typer.Option(1.0, "--sol", min=0.0),
):
    async def _go(s: Services):
        sig = await s.chain.request_airdrop(account, sol)
        return sig, s.chain.explorer_tx_url(sig)

    sig, url = _run(_go)
    typer.echo(f"signature: {sig}")
    typer.echo(f"explorer: {url}")


@app.command("explorer")
def explorer(
    kind: str = typer.Argument(..., help="tx | address"),
    value: str = typer.Argument(...),
):
    if kind not in ("tx", "address"):
        raise typer.BadParameter("kind must be 'tx' or 'address'")

    async def _go(s: Services):
        return s.chain.explorer_tx_url(value) if kind == "tx" else s.chain.explorer_address_url(value)

    typer.echo(_run(_go))


# ------------------------------ Workflows ------------------------------------


@app.command("deploy")
def deploy(
    vk_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Verification key bytes"),
    keypair: Path = typer.Option(..., "--keypair", "-k", exists=True, dir_okay=False, help="Wallet keypair file"),
):
    """
    Deploy a verification key to a fresh account.
    """
    wallet = load_keypair_file(keypair)
    vk = vk_file.read_bytes()

    async def _go(s: Services):
        return await s.deployments.deploy(vk, wallet.address, keypair_signer(wallet), _print_progress)

    record = _run(_go)
    typer.echo(f"program id: {record.program_id}")
    typer.echo(f"signature:  {record.signature}")
    typer.echo(f"cost:       {record.cost} lamports ({lamports_to_sol(record.cost):.9f} SOL)")


@app.command("verify")
def verify(
    program_id: str = typer.Argument(..., help="Account created by `deploy`"),
    proof_file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    inputs: str = typer.Option("", "--inputs", "-i", help="Comma-separated public inputs"),
    keypair: Path = typer.Option(..., "--keypair", "-k", exists=True, dir_okay=False, help="Wallet keypair file"),
):
    """
    Submit a proof to a deployed verifier and report the on-chain verdict.
    """
    wallet = load_keypair_file(keypair)
    proof = proof_file.read_bytes()
    public_inputs = [x.strip() for x in inputs.split(",") if x.strip()]

    async def _go(s: Services):
        return await s.verifications.verify(
            program_id, proof, public_inputs, wallet.address, keypair_signer(wallet), _print_progress
        )

    record = _run(_go)
    typer.echo(f"valid:     {str(record.is_valid).lower()} ({record.reason})")
    typer.echo(f"signature: {record.signature}")
    if not record.is_valid:
        raise typer.Exit(code=2)


if __name__ == "__main__":
    app()
