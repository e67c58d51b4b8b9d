#!/usr/bin/env python3
"""
PUMP CASINO — Command Line

Usage:
    python -m tools.casino_cli play dice --wager 10 --param prediction=60
    python -m tools.casino_cli play blackjack --wager 25            # prompts hit/stand
    python -m tools.casino_cli play mines --wager 5 --param mine_count=3 --actions reveal:0,reveal:7,cash_out
    python -m tools.casino_cli play crash --wager 10 --param auto_cashout=2.5
    python -m tools.casino_cli simulate dice --rounds 50000 --param prediction=50
    python -m tools.casino_cli simulate all --rounds 5000 --json
"""

import argparse
import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from config.game_schema import GameType
from config.settings import EngineConfig, configure_logging
from round_engine.engine import RoundEngine
from round_engine.errors import EngineError
from round_engine.games import GAME_TYPES
from round_engine.simulate import simulate

console = Console()


def parse_kv(pairs) -> dict:
    """['prediction=60', 'color=red'] -> {'prediction': 60, 'color': 'red'}"""
    out = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}")
        key, raw = pair.split("=", 1)
        try:
            out[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            out[key.strip()] = raw
    return out


def parse_actions(script: str) -> list:
    """'reveal:3,reveal:8,cash_out' -> [('reveal', {'index': 3}), ...]"""
    actions = []
    for token in filter(None, (t.strip() for t in (script or "").split(","))):
        name, _, arg = token.partition(":")
        params = {"index": int(arg)} if arg else {}
        actions.append((name, params))
    return actions


# ═══════════════════════════════════════════════════════════════
# Rendering
# ═══════════════════════════════════════════════════════════════

def render_state(state, balance) -> None:
    colour = {"win": "green", "lose": "red", "push": "yellow"}.get(state.result, "cyan")
    lines = [
        f"Game: {state.game_type}",
        f"Phase: {state.phase}",
        f"Wager: {state.wager}",
    ]
    for key, value in state.state.items():
        if key in ("cells", "paytable"):
            continue
        lines.append(f"{key}: {value}")
    if state.is_terminal:
        lines += [
            "",
            f"[bold {colour}]{(state.result or '').upper()}[/bold {colour}]  payout {state.payout}"
            + (f"  ({state.multiplier}x)" if state.multiplier is not None else ""),
        ]
    elif state.allowed_actions:
        lines += ["", f"Actions: {', '.join(state.allowed_actions)}"]
    lines.append(f"Balance: {balance}")
    console.print(Panel("\n".join(lines), title=f"🎰 Round {state.round_id}", border_style=colour))


def render_mines(cells) -> None:
    for row in range(5):
        icons = []
        for col in range(5):
            cell = cells[row * 5 + col]
            icons.append("💣" if cell == "mine" else "💎" if cell == "gem" else f"{row * 5 + col:>2}")
        console.print("  " + " ".join(f"{i:>2}" for i in icons))


# ═══════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════

def _wait_terminal(engine: RoundEngine, round_id: str, timeout: float = 600.0):
    deadline = time.monotonic() + timeout
    state = engine.get_round_state(round_id)
    while not state.is_terminal and time.monotonic() < deadline:
        time.sleep(EngineConfig.SCHEDULER_INTERVAL_SECONDS)
        state = engine.get_round_state(round_id)
    return state


def _play_crash(engine: RoundEngine, round_id: str):
    console.print("[cyan]⏳ Waiting for the countdown…[/cyan]")
    state = engine.get_round_state(round_id)
    while state.state.get("table_phase") == "betting":
        time.sleep(EngineConfig.SCHEDULER_INTERVAL_SECONDS)
        state = engine.get_round_state(round_id)
    if state.is_terminal or state.state.get("auto_cashout"):
        return _wait_terminal(engine, round_id)
    console.print("[bold green]🚀 Running![/bold green] Press Enter to cash out.")
    input()
    return engine.act(round_id, "cash_out")


def cmd_play(args) -> int:
    engine = RoundEngine()
    engine.start()
    try:
        params = parse_kv(args.param)
        round_id = engine.place_bet(args.player, args.game, params, args.wager)
        console.print(f"[green]✅ Bet placed[/green] — {args.wager} on {args.game} "
                      f"(balance {engine.get_balance(args.player)})")
        state = engine.get_round_state(round_id)

        if GameType.parse(args.game) == GameType.CRASH:
            state = _play_crash(engine, round_id)
        else:
            scripted = parse_actions(args.actions)
            while not state.is_terminal and state.allowed_actions:
                render_state(state, engine.get_balance(args.player))
                if state.game_type == GameType.MINES.value:
                    render_mines(state.state["cells"])
                if scripted:
                    action, action_params = scripted.pop(0)
                elif args.actions:
                    break
                else:
                    action = Prompt.ask("Action", choices=state.allowed_actions)
                    action_params = {}
                    if action == "reveal":
                        action_params = {"index": int(Prompt.ask("Cell (0-24)"))}
                try:
                    state = engine.act(round_id, action, action_params)
                except EngineError as e:
                    console.print(f"[yellow]⚠️ {e}[/yellow]")
            if not state.is_terminal and not state.allowed_actions:
                # dealer plays on the scheduler
                state = _wait_terminal(engine, round_id)

        render_state(state, engine.get_balance(args.player))
        if state.game_type == GameType.MINES.value:
            render_mines(state.state["cells"])
        return 0
    except EngineError as e:
        console.print(f"[red]❌ {e.code}: {e}[/red]")
        return 1
    finally:
        engine.stop()


def cmd_simulate(args) -> int:
    games = GAME_TYPES if args.game == "all" else [args.game]
    params = parse_kv(args.param)
    results = []
    for game in games:
        game_params = params if args.game != "all" else None
        try:
            results.append(simulate(game, rounds=args.rounds, seed=args.seed, params=game_params,
                                    mines_reveals=args.mines_reveals))
        except (EngineError, ValueError) as e:
            console.print(f"[red]❌ {game}: {e}[/red]")
            return 1

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
        return 0

    table = Table(title=f"Simulation — {args.rounds:,} rounds, seed {args.seed}")
    table.add_column("Game", style="cyan")
    table.add_column("RTP", justify="right")
    table.add_column("Theoretical", justify="right")
    table.add_column("95% CI", justify="right")
    table.add_column("Hit rate", justify="right")
    table.add_column("Max", justify="right")
    for r in results:
        theo = "—" if r.rtp_theoretical is None else f"{r.rtp_theoretical * 100:.2f}%"
        table.add_row(
            r.game_type,
            f"{r.rtp * 100:.2f}%",
            theo,
            f"{r.confidence_95[0] * 100:.2f}–{r.confidence_95[1] * 100:.2f}%",
            f"{r.hit_rate * 100:.1f}%",
            f"{r.max_multiplier_hit:.2f}x",
        )
    console.print(table)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Pump Casino round engine")
    sub = parser.add_subparsers(dest="command", required=True)

    play = sub.add_parser("play", help="Play one round")
    play.add_argument("game", choices=GAME_TYPES)
    play.add_argument("--wager", type=str, default="10")
    play.add_argument("--player", type=str, default="cli-player")
    play.add_argument("--param", action="append", help="Bet parameter key=value (repeatable)")
    play.add_argument("--actions", type=str, default="",
                      help="Scripted actions, e.g. hit,stand or reveal:3,cash_out")

    sim = sub.add_parser("simulate", help="Monte Carlo RTP check")
    sim.add_argument("game", choices=GAME_TYPES + ["all"])
    sim.add_argument("--rounds", type=int, default=10_000)
    sim.add_argument("--seed", type=int, default=42)
    sim.add_argument("--param", action="append", help="Bet parameter key=value (repeatable)")
    sim.add_argument("--mines-reveals", type=int, default=3)
    sim.add_argument("--json", action="store_true")

    parser.add_argument("--log-level", type=str, default=None)
    args = parser.parse_args(argv)
    configure_logging(args.log_level or "WARNING")

    if args.command == "play":
        return cmd_play(args)
    return cmd_simulate(args)


if __name__ == "__main__":
    sys.exit(main())
