"""Command-line demo walking the dialer through a full session.

The dialer is driven against the in-process loopback engine: it connects,
registers, places (or receives) a call, sends a few DTMF digits, hangs up and
disconnects, printing every state change and the final activity log. It is
intended for manual experimentation rather than automated testing.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Callable

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ._dialer import Dialer
from ._loopback import LoopbackEngine
from ._types import CallState, ConnectionState, DialerConfig, DialerError


CONSOLE = Console()
SCENARIOS = ("call", "answer", "busy", "reject-registration")


def _build_parser() -> argparse.ArgumentParser:
	defaults = DialerConfig()
	parser = argparse.ArgumentParser(description="Run the dialer against a loopback engine")
	parser.add_argument("--transport-uri", default=defaults.transport_uri, help="WebSocket URI of the SIP server")
	parser.add_argument("--identity", default=defaults.identity_uri, help="SIP identity URI to register")
	parser.add_argument("--display-name", default=defaults.display_name, help="Caller display name")
	parser.add_argument("--password", default="secret", help="Registration password")
	parser.add_argument("--destination", default="555", help="Number to dial")
	parser.add_argument("--digits", default="123#", help="DTMF digits to send once the call is up")
	parser.add_argument(
		"--scenario",
		choices=SCENARIOS,
		default="call",
		help="Loopback behaviour to exercise",
	)
	parser.add_argument(
		"--delay",
		type=float,
		default=0.3,
		help="Seconds between simulated server events",
	)
	parser.add_argument(
		"--log-level",
		default="INFO",
		choices={"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"},
		help="Logging verbosity",
	)
	parser.add_argument(
		"--debug",
		action="store_true",
		help="Shortcut for --log-level=DEBUG",
	)
	return parser


def _configure_logging(level: str, debug: bool) -> None:
	effective_level = "DEBUG" if debug else level
	logging.basicConfig(
		level=getattr(logging, effective_level.upper(), logging.INFO),
		format="%(message)s",
		handlers=[
			RichHandler(
				console=CONSOLE,
				rich_tracebacks=True,
				show_path=False,
				show_time=False,
			)
		],
		force=True,
	)


def _watch(dialer: Dialer) -> None:
	def on_connection(old: ConnectionState, new: ConnectionState) -> None:
		CONSOLE.print(f"[cyan]connection[/] {old} -> [bold]{new}[/]")

	def on_call(old: CallState, new: CallState) -> None:
		CONSOLE.print(f"[magenta]call[/] {old} -> [bold]{new}[/]")

	dialer.connection.fsm.subscribe(on_connection)
	dialer.calls.fsm.subscribe(on_call)


async def _wait_for(predicate: Callable[[], bool], timeout: float) -> bool:
	deadline = asyncio.get_running_loop().time() + timeout
	while not predicate():
		if asyncio.get_running_loop().time() >= deadline:
			return False
		await asyncio.sleep(0.05)
	return True


def _render_log(dialer: Dialer) -> Table:
	table = Table(title="Activity log (newest first)")
	table.add_column("#", justify="right", style="dim")
	table.add_column("Time", style="cyan")
	table.add_column("Message")
	for entry in dialer.entries:
		table.add_row(str(entry.sequence), entry.created_at.strftime("%H:%M:%S.%f")[:-3], entry.message)
	return table


async def _run_demo(args: argparse.Namespace) -> int:
	_configure_logging(args.log_level, args.debug)

	timeout = max(2.0, args.delay * 10)
	engine = LoopbackEngine(
		asyncio.get_running_loop(),
		delay=args.delay,
		register=args.scenario != "reject-registration",
		busy_numbers={args.destination} if args.scenario == "busy" else (),
	)
	config = DialerConfig(
		transport_uri=args.transport_uri,
		identity_uri=args.identity,
		display_name=args.display_name,
	)

	with Dialer(engine, config) as dialer:
		_watch(dialer)
		try:
			dialer.connect(config.credentials(args.password))
		except DialerError as exc:
			logging.error(f"Cannot connect: {exc}")
			return 2

		settled = await _wait_for(
			lambda: dialer.connection_state
			in (ConnectionState.REGISTERED, ConnectionState.REGISTRATION_FAILED, ConnectionState.DISCONNECTED),
			timeout,
		)
		if not settled:
			logging.warning("Server did not answer in time")

		if dialer.is_usable:
			if args.scenario == "answer":
				engine.ring(dialer.connection.transport)
				await _wait_for(lambda: dialer.in_call, timeout)
				dialer.answer()
			else:
				dialer.dial(args.destination)

			await _wait_for(
				lambda: dialer.call_state in (CallState.IN_CALL, CallState.FAILED, CallState.TERMINATED),
				timeout,
			)

			if dialer.call_state is CallState.IN_CALL:
				for digit in args.digits:
					dialer.send_digit(digit)
					await asyncio.sleep(args.delay / 2)
				dialer.hangup()
		else:
			logging.warning("Dialer is offline; skipping the call")

		await asyncio.sleep(args.delay)
		dialer.disconnect()
		await asyncio.sleep(args.delay)

		CONSOLE.print(_render_log(dialer))
		snapshot = dialer.snapshot()
		summary_lines = [
			f"[bold]Connection[/]: {snapshot['connection']}",
			f"[bold]Call[/]: {snapshot['call']}",
			f"[bold]Online[/]: {'yes' if snapshot['online'] else 'no'}",
		]
		CONSOLE.print(Panel("\n".join(summary_lines), title="Demo Summary", border_style="green"))

	logging.info("Demo finished")
	return 0


def main() -> int:
	parser = _build_parser()
	args = parser.parse_args()
	return asyncio.run(_run_demo(args))


if __name__ == "__main__":
	raise SystemExit(main())
