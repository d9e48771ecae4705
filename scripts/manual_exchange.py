"""Terminal front-end for a manual offer/answer exchange.

Run one instance per machine.  The broadcaster prints its offer blob; paste it
into the viewer, which prints an answer blob; paste that back into the
broadcaster.  Each blob is a single line of JSON.

Examples
--------
Broadcast from the default camera::

    python scripts/manual_exchange.py --role broadcaster

Join from a Mac without audio::

    python scripts/manual_exchange.py --role viewer --profile macos

Press Ctrl+C to reset and exit.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Iterable

from lanlink.config import load_config
from lanlink.errors import SignalingError
from lanlink.roles import Role
from lanlink.rtc.media import MediaPlayerCapture
from lanlink.rtc.transport import AiortcTransport
from lanlink.signaling import SignalingMachine, SignalingSnapshot, SignalingState
from lanlink.utils.logging import configure_logging


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LANLink manual signaling exchange")
    parser.add_argument(
        "--role",
        required=True,
        choices=["broadcaster", "viewer", "offerer", "answerer"],
        help="Which side of the exchange this instance plays.",
    )
    parser.add_argument("--profile", default="default", help="Configuration profile to load.")
    parser.add_argument("--config", default=None, help="Path to a profiles YAML file.")
    parser.add_argument("--log-level", default="WARNING", help="Root log level.")
    return parser.parse_args(argv)


async def read_blob(prompt: str) -> str:
    print(prompt, flush=True)
    line = await asyncio.to_thread(sys.stdin.readline)
    return line.strip()


async def paste_until_accepted(machine: SignalingMachine, prompt: str, apply) -> None:
    while True:
        blob = await read_blob(prompt)
        try:
            await apply(blob)
        except SignalingError as exc:
            print(f"{machine.status} ({exc})", flush=True)
            continue
        return


async def exchange(args: argparse.Namespace) -> int:
    config = load_config(args.profile, Path(args.config) if args.config else None)
    role = Role.parse(args.role)
    finished = asyncio.Event()
    lost = asyncio.Event()

    def _on_snapshot(snapshot: SignalingSnapshot) -> None:
        if snapshot.state in (SignalingState.CONNECTED, SignalingState.LOST):
            finished.set()
        if snapshot.state is SignalingState.LOST:
            lost.set()

    async with SignalingMachine(
        MediaPlayerCapture(config.capture),
        AiortcTransport(),
        ice_servers=config.ice_servers,
    ) as machine:
        machine.subscribe(_on_snapshot)
        try:
            await machine.select_role(role)
        except SignalingError:
            print(machine.status, file=sys.stderr)
            return 1
        print(machine.status, flush=True)

        if role is Role.OFFERER:
            blob = await machine.generate_offer()
            print("\n1. Send this offer to the viewer:\n")
            print(blob, flush=True)
            await paste_until_accepted(
                machine, "\n2. Paste the viewer's answer here:", machine.apply_remote_answer
            )
        else:
            await paste_until_accepted(
                machine, "1. Paste the broadcaster's offer here:", machine.apply_remote_offer
            )
            print("\n2. Send this answer to the broadcaster:\n")
            print(machine.snapshot().answer, flush=True)
            print("\nWaiting for broadcaster to connect...", flush=True)

        await finished.wait()
        print(machine.status, flush=True)
        if machine.state is SignalingState.LOST:
            return 2

        # Media keeps flowing until the link drops or the user interrupts.
        await lost.wait()
        print(machine.status, flush=True)
    return 2


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        return asyncio.run(exchange(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
