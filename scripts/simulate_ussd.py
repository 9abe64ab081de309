#!/usr/bin/env python3
"""USSD conversation simulator for the StockAlert server.

Acts like the Africa's Talking gateway: posts form-encoded callbacks to a
running server, accumulating the ``*``-joined ``text`` history exactly as
the gateway does, and prints every screen.

Usage::

    # Install deps (first time only)
    uv pip install httpx rich

    # Scripted report: Analgesics -> Paracetamol -> 10 -> High
    uv run python scripts/simulate_ussd.py --inputs 1 1 1 10 3

    # Register a new caller
    uv run python scripts/simulate_ussd.py -p 0722000111 --inputs 1 "Jane Doe" "Nakuru Clinic" Nakuru

    # Interactive session on Airtel
    uv run python scripts/simulate_ussd.py --network 63907
"""

from __future__ import annotations

import argparse
import sys
import time
import uuid

import httpx
from rich.console import Console
from rich.panel import Panel

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_SERVICE_CODE = "*789*12345#"

console = Console()


def _post(
    client: httpx.Client,
    *,
    session_id: str,
    phone: str,
    network: str,
    service_code: str,
    history: list[str],
) -> tuple[str, float]:
    started = time.perf_counter()
    resp = client.post(
        "/api/v1/ussd",
        data={
            "sessionId": session_id,
            "serviceCode": service_code,
            "phoneNumber": phone,
            "networkCode": network,
            "text": "*".join(history),
        },
    )
    resp.raise_for_status()
    return resp.text, (time.perf_counter() - started) * 1000


def _show(body: str, elapsed_ms: float) -> bool:
    """Print one screen; return True while the session continues."""
    prefix, _, screen = body.partition(" ")
    style = "green" if prefix == "CON" else "red"
    console.print(
        Panel(
            screen,
            title=f"[{style}]{prefix}[/]",
            subtitle=f"[dim]{len(body)} chars, {elapsed_ms:.0f} ms[/]",
            width=40,
        )
    )
    return prefix == "CON"


def run(args: argparse.Namespace) -> int:
    session_id = args.session_id or f"sim-{uuid.uuid4().hex[:12]}"
    console.print(f"[dim]Session {session_id} from {args.phone} via {args.network}[/]")

    history: list[str] = []
    scripted = list(args.inputs or [])

    with httpx.Client(base_url=args.base_url, timeout=15.0) as client:
        try:
            body, elapsed = _post(
                client, session_id=session_id, phone=args.phone,
                network=args.network, service_code=args.service_code, history=history,
            )
        except httpx.HTTPError as exc:
            console.print(f"[red]Request failed:[/] {exc}")
            return 1

        while _show(body, elapsed):
            if scripted:
                entry = scripted.pop(0)
                console.print(f"[bold]> {entry}[/]")
            elif args.inputs is not None:
                console.print("[yellow]Scripted inputs exhausted; session left open[/]")
                return 0
            else:
                entry = console.input("[bold]> [/]")
            history.append(entry)
            try:
                body, elapsed = _post(
                    client, session_id=session_id, phone=args.phone,
                    network=args.network, service_code=args.service_code, history=history,
                )
            except httpx.HTTPError as exc:
                console.print(f"[red]Request failed:[/] {exc}")
                return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a StockAlert USSD session")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("-p", "--phone", default="+254712345678")
    parser.add_argument("--network", default="63902", help="Network code (default Safaricom)")
    parser.add_argument("--service-code", default=DEFAULT_SERVICE_CODE)
    parser.add_argument("--session-id", default=None)
    parser.add_argument(
        "--inputs", nargs="*", default=None,
        help="Scripted inputs; omit for an interactive session",
    )
    sys.exit(run(parser.parse_args()))


if __name__ == "__main__":
    main()
