#!/usr/bin/env python3
"""Console runner for the mind.

Type a line and press enter to talk to it. Replies and wandering
thoughts are printed as they come. `/status` prints the engine table,
`/quit` (or Ctrl-C) stops the loop and saves the Self-State snapshot.
"""

import argparse
import asyncio
import logging
import random
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from clients.reasoning import get_reasoning_client
from config_loader import (
    get_config,
    get_default_mode_config,
    get_logging_config,
    get_reasoning_config,
    get_scheduler_config,
    get_state_config,
)
from engines import Utterance, build_default_engines
from engines.default_mode import CONNECTORS, WANDERING_THOUGHTS
from substrate import (
    CadenceConfig,
    EngineId,
    IdleCadence,
    RandomContentProvider,
    Scheduler,
    SelfStateFile,
    SelfStateStore,
    SignalBus,
    SignalType,
    StateConfig,
    ThoughtStream,
    make_signal,
)
from substrate.bridge import ReflectionBridge, ServiceBridge, ThoughtBridge

logger = logging.getLogger(__name__)

console = Console()


def print_say(utterance: Utterance) -> None:
    style = "yellow" if utterance.degraded else "bold magenta"
    console.print(f"[{style}]wybe:[/{style}] {escape(utterance.text)}")


def print_think(utterance: Utterance) -> None:
    console.print(f"[dim italic]({escape(utterance.category)}) {escape(utterance.text)}[/dim italic]")


def print_status(scheduler: Scheduler, bridges: List[ServiceBridge]) -> None:
    status = scheduler.get_status()

    table = Table(title=f"Mind status (tick {status['tick']})")
    table.add_column("Engine", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Debug")
    for engine_id, engine_status in status["engines"].items():
        table.add_row(engine_id, engine_status["status"], engine_status["debug"])
    for bridge in bridges:
        b = bridge.get_status()
        table.add_row(
            bridge.id,
            "in flight" if b["in_flight"] else "idle",
            f"requests={b['requests']} dropped={b['dropped']} duplicates={b['duplicates']} failures={b['failures']}",
        )
    console.print(table)

    state_table = Table(title="Self-State")
    state_table.add_column("Dimension", style="cyan")
    state_table.add_column("Current", justify="right")
    state_table.add_column("Target", justify="right")
    targets = scheduler.state.target_snapshot()
    for dim, value in status["self_state"].items():
        state_table.add_row(dim, f"{value:.3f}", f"{targets[dim]:.3f}")
    console.print(state_table)


def start_stdin_reader(
    loop: asyncio.AbstractEventLoop,
    scheduler: Scheduler,
    bridges: List[ServiceBridge],
) -> threading.Thread:
    """Read lines on a daemon thread; the bus is safe to emit into from here."""

    def _reader() -> None:
        for raw in sys.stdin:
            line = raw.strip()
            if not line:
                continue
            if line == "/quit":
                loop.call_soon_threadsafe(scheduler.stop)
                return
            if line == "/status":
                loop.call_soon_threadsafe(print_status, scheduler, bridges)
                continue
            scheduler.bus.emit(make_signal(
                SignalType.TEXT_INPUT,
                EngineId.EXTERNAL,
                {"text": line},
            ))
        logger.debug("stdin closed")

    thread = threading.Thread(target=_reader, name="stdin-reader", daemon=True)
    thread.start()
    return thread


def build_scheduler(reflection: bool) -> Scheduler:
    sched_cfg = get_scheduler_config()
    state_cfg = get_state_config()
    mode_cfg = get_default_mode_config()

    state = SelfStateStore(config=StateConfig(
        damping=state_cfg["damping"],
        epsilon=state_cfg["epsilon"],
        energy_drain=state_cfg["energy_drain"],
    ))
    scheduler = Scheduler(
        bus=SignalBus(debug_history=sched_cfg["debug_history"]),
        state=state,
        tick_hz=sched_cfg["tick_hz"],
    )

    cadence = IdleCadence(CadenceConfig(
        idle_threshold_ticks=mode_cfg["idle_threshold_ticks"],
        base_cooldown_seconds=mode_cfg["base_cooldown_seconds"],
        min_cooldown_seconds=mode_cfg["min_cooldown_seconds"],
        max_cooldown_seconds=mode_cfg["max_cooldown_seconds"],
    ))
    provider = RandomContentProvider(
        WANDERING_THOUGHTS,
        CONNECTORS,
        rng=random.Random(mode_cfg["seed"]),
    )
    scheduler.register_all(*build_default_engines(
        on_say=print_say,
        on_think=print_think,
        cadence=cadence,
        stream=ThoughtStream(freshness_seconds=mode_cfg["freshness_seconds"]),
        provider=provider,
        reflection=reflection,
    ))
    return scheduler


async def run(scheduler: Scheduler, reflection: bool, history_limit: int, ticks: Optional[int]) -> List[ServiceBridge]:
    client = get_reasoning_client()
    bridges: List[ServiceBridge] = [ThoughtBridge(scheduler.bus, client, history_limit=history_limit)]
    if reflection:
        bridges.append(ReflectionBridge(scheduler.bus, client))

    loop = asyncio.get_running_loop()

    def sig_handler(sig, frame):
        logger.info("Received shutdown signal")
        loop.call_soon_threadsafe(scheduler.stop)

    signal.signal(signal.SIGINT, sig_handler)
    signal.signal(signal.SIGTERM, sig_handler)

    start_stdin_reader(loop, scheduler, bridges)
    console.print("[bold]Mind is awake.[/bold] Type to talk, /status for state, /quit to leave.")

    try:
        await scheduler.run(max_ticks=ticks)
    finally:
        for bridge in bridges:
            if bridge.in_flight:
                logger.info("Waiting for %s to finish", bridge.id)
            await bridge.drain()
            bridge.close()
    return bridges


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the mind in the console")
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to config file (default: config.yaml; a sibling *.local.yaml wins if present)",
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=None,
        help="Stop after N ticks (default: run until /quit or Ctrl-C)",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print the (rehydrated) status and exit",
    )
    args = parser.parse_args()

    get_config(args.config)
    logging.basicConfig(
        level=get_logging_config()["level"],
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    reasoning_cfg = get_reasoning_config()
    reflection = reasoning_cfg["reflection"]
    scheduler = build_scheduler(reflection)

    state_file = SelfStateFile(Path(get_state_config()["snapshot_path"]))
    saved = state_file.load()
    if saved is not None:
        scheduler.state.restore(saved)

    if args.status:
        print_status(scheduler, [])
        return

    bridges: List[ServiceBridge] = []
    try:
        bridges = asyncio.run(run(scheduler, reflection, reasoning_cfg["history_limit"], args.ticks))
    finally:
        state_file.save(scheduler.state.snapshot)
        logger.info("Self-state saved to %s", state_file.path)
        print_status(scheduler, bridges)


if __name__ == "__main__":
    main()
