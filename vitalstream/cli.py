"""VitalStream command-line interface."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from dataclasses import replace
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from vitalstream.client import BackendClient
from vitalstream.config import BackendConfig, Platform
from vitalstream.demo import DemoBackend, create_app, demo_channel_factory, demo_transport
from vitalstream.errors import BackendError
from vitalstream.metrics import EventLog
from vitalstream.models import DeviceType, SessionType, StreamSnapshot
from vitalstream.notifications import NotificationCenter
from vitalstream.scanner import discover

logger = logging.getLogger("vitalstream.cli")


def _emit_json(data: Any) -> None:
	json.dump(data, sys.stdout, indent=2, default=str)
	sys.stdout.write("\n")


def _key_value_table(title: str, payload: Dict[str, Any]) -> Table:
	table = Table(title=title, show_header=False)
	table.add_column("field")
	table.add_column("value")
	for key, value in payload.items():
		if isinstance(value, (dict, list)):
			value = json.dumps(value, default=str)
		table.add_row(key, "" if value is None else str(value))
	return table


def _snapshot_row(snapshot: StreamSnapshot) -> List[str]:
	def fmt(value: Optional[float]) -> str:
		return "-" if value is None else f"{value:.1f}"

	return [
		snapshot.timestamp,
		fmt(snapshot.signal("heart_rate")),
		fmt(snapshot.signal("spo2")),
		fmt(snapshot.signal("temperature")),
		str(snapshot.clarity_layer.get("quality_assessment", "-")),
		str(snapshot.condition or "-"),
		fmt(snapshot.wellness_score),
	]


SNAPSHOT_COLUMNS = ("timestamp", "hr", "spo2", "temp", "quality", "condition", "wellness")


class _SnapshotPrinter:
	def __init__(self, console: Console, as_json: bool, limit: Optional[int]) -> None:
		self.console = console
		self.as_json = as_json
		self.limit = limit
		self.count = 0
		self.done = asyncio.Event()

	def __call__(self, snapshot: StreamSnapshot) -> None:
		if self.done.is_set():
			return
		self.count += 1
		if self.as_json:
			sys.stdout.write(json.dumps(snapshot.to_dict(), default=str) + "\n")
			sys.stdout.flush()
		else:
			self.console.print("  ".join(_snapshot_row(snapshot)))
		if self.limit is not None and self.count >= self.limit:
			self.done.set()

	def header(self) -> None:
		if not self.as_json:
			self.console.print("  ".join(SNAPSHOT_COLUMNS), style="bold")


def _install_stop_handlers(stop: asyncio.Event) -> None:
	loop = asyncio.get_running_loop()
	for sig in (signal.SIGINT, signal.SIGTERM):
		with contextlib.suppress(NotImplementedError, RuntimeError):
			loop.add_signal_handler(sig, stop.set)


async def _wait_until(done: asyncio.Event, runtime: Optional[float]) -> None:
	try:
		await asyncio.wait_for(done.wait(), timeout=runtime)
	except asyncio.TimeoutError:
		pass


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------
async def _cmd_health(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	status = await client.check_health()
	if status is None:
		if args.json:
			_emit_json({"status": "offline", "url": client.config.base_url})
		else:
			console.print(f"[red]Backend not reachable at {client.config.base_url}[/red]")
		return 1
	if args.json:
		_emit_json(status.to_dict())
		return 0
	table = Table(title=f"Backend {status.status}")
	table.add_column("SERVICE")
	table.add_column("UP")
	for name, up in sorted(status.services.items()):
		table.add_row(name, "yes" if up else "[red]no[/red]")
	console.print(table)
	console.print(f"clients: {status.connected_clients}  active sessions: {status.active_sessions}")
	return 0


async def _cmd_connect(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	connection = await client.connect_device(args.device, args.device_type, args.user)
	notices = NotificationCenter()
	device = connection.device_status
	if device is not None and device.battery_level is not None:
		notices.low_battery(device.battery_level)
	if args.json:
		_emit_json(connection.to_dict())
	else:
		console.print(_key_value_table("Device connection", connection.to_dict()))
	for item in notices.notifications:
		console.print(f"[yellow]{item.title}:[/yellow] {item.body}")
	return 0 if connection.success else 1


async def _cmd_stream(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	printer = _SnapshotPrinter(console, args.json, args.count)
	printer.header()

	def _on_error(exc: BaseException) -> None:
		console.print(f"[red]poll failed:[/red] {exc}")

	_install_stop_handlers(printer.done)
	poller = client.start_polling(printer, interval=args.interval, on_error=_on_error)
	try:
		await _wait_until(printer.done, args.runtime)
	finally:
		poller.stop()
	return 0


async def _cmd_watch(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	printer = _SnapshotPrinter(console, args.json, args.count)
	printer.header()
	notices = NotificationCenter()
	notices.subscribe(lambda items: console.print(f"[yellow]{items[0].title}:[/yellow] {items[0].body}") if items else None)

	def _on_error(exc: BaseException) -> None:
		console.print(f"[red]stream error:[/red] {exc}")

	def _on_close() -> None:
		if not printer.done.is_set():
			notices.device_disconnected()

	_install_stop_handlers(printer.done)
	socket = client.connect_stream(printer, _on_error, _on_close)
	watcher = asyncio.create_task(socket.wait_closed())
	try:
		finished = asyncio.create_task(printer.done.wait())
		await asyncio.wait({watcher, finished}, timeout=args.runtime, return_when=asyncio.FIRST_COMPLETED)
		finished.cancel()
	finally:
		printer.done.set()
		await client.disconnect_stream()
		watcher.cancel()
		with contextlib.suppress(asyncio.CancelledError):
			await watcher
	return 0 if printer.count else 1


async def _cmd_predict(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	prediction = await client.get_prediction()
	if args.json:
		_emit_json(prediction.to_dict())
	else:
		console.print(_key_value_table("Prediction", prediction.to_dict()))
	return 0


async def _cmd_session_create(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	session = await client.create_session(args.device, args.user, args.session_type)
	if args.json:
		_emit_json(session.to_dict())
	else:
		console.print(_key_value_table("Session created", session.to_dict()))
	return 0


async def _cmd_session_get(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	session = await client.get_session(args.session_id)
	if args.json:
		_emit_json(session.to_dict())
	else:
		console.print(_key_value_table(f"Session {session.session_id}", session.to_dict()))
	return 0


async def _cmd_logs(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	page = await client.get_processing_logs(limit=args.limit)
	if args.json:
		_emit_json(page.to_dict())
		return 0
	table = Table(title=f"Processing logs ({len(page.logs)} of {page.total})")
	for column in ("TIMESTAMP", "LEVEL", "MESSAGE"):
		table.add_column(column)
	for entry in page.logs:
		table.add_row(entry.timestamp, entry.level, entry.message)
	console.print(table)
	return 0


async def _cmd_layers(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	payload = await client.get_layer_demo()
	if args.json or not isinstance(payload, dict):
		_emit_json(payload)
	else:
		console.print(_key_value_table("Layer demonstration", payload))
	return 0


async def _cmd_scan(args: argparse.Namespace, client: BackendClient, console: Console) -> int:
	results = await discover(timeout=args.scan_timeout, names=args.name or None, max_devices=args.limit)
	if args.json:
		_emit_json([item.to_dict() for item in results])
	else:
		table = Table(title="Wearables in range")
		for column in ("ADDRESS", "NAME", "RSSI"):
			table.add_column(column)
		for item in results:
			table.add_row(item.address, item.name or "", "" if item.rssi is None else str(item.rssi))
		console.print(table)
	if not args.register:
		return 0
	if not results:
		console.print("[red]No wearable found to register[/red]")
		return 1
	connection = await client.connect_device(results[0].address, args.device_type, args.user)
	console.print(f"Registered {results[0].address}: {connection.message} (session {connection.session_id})")
	return 0 if connection.success else 1


def _cmd_serve_demo(args: argparse.Namespace) -> int:
	import uvicorn

	app = create_app(DemoBackend(args.seed), stream_interval=args.interval)
	uvicorn.run(app, host=args.host, port=args.port, log_level="info")
	return 0


# ----------------------------------------------------------------------
# Wiring
# ----------------------------------------------------------------------
def _build_config(args: argparse.Namespace) -> BackendConfig:
	config = BackendConfig.from_env(args.platform)
	overrides: Dict[str, Any] = {}
	if args.api_url:
		overrides["base_url"] = args.api_url
	if args.ws_url:
		overrides["ws_url"] = args.ws_url
	if args.timeout is not None:
		overrides["timeout"] = args.timeout
	return replace(config, **overrides) if overrides else config


def build_client(args: argparse.Namespace, config: Optional[BackendConfig] = None) -> BackendClient:
	config = config or _build_config(args)
	events = EventLog(args.log, static_extra={"base_url": config.base_url}) if args.log else None
	if not args.demo:
		return BackendClient(config, events=events)
	backend = DemoBackend(args.seed)
	return BackendClient(
		config,
		transport=demo_transport(backend),
		channel_factory=demo_channel_factory(backend, interval=getattr(args, "interval", 1.0)),
		events=events,
	)


async def _run_command(args: argparse.Namespace, config: BackendConfig) -> int:
	console = Console()
	async with build_client(args, config) as client:
		try:
			return await args.handler(args, client, console)
		except BackendError as exc:
			console.print(f"[red]{exc}[/red]")
			return 1


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="VitalStream wearable backend client")
	parser.add_argument("--platform", choices=[p.value for p in Platform], default=Platform.DEFAULT.value, help="Selects the default backend address")
	parser.add_argument("--api-url", help="Override the HTTP base URL")
	parser.add_argument("--ws-url", help="Override the WebSocket base URL")
	parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
	parser.add_argument("--demo", action="store_true", help="Use the simulated in-process backend")
	parser.add_argument("--seed", type=int, help="Seed for the simulated backend")
	parser.add_argument("--log", help="Append client events to this CSV file")
	parser.add_argument("--json", action="store_true", help="Output JSON")
	parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
	sub = parser.add_subparsers(dest="command", required=True)

	health = sub.add_parser("health", help="Probe backend availability")
	health.set_defaults(handler=_cmd_health)

	connect = sub.add_parser("connect", help="Register a device with the backend")
	connect.add_argument("device", help="Device identifier")
	connect.add_argument("--type", dest="device_type", choices=[t.value for t in DeviceType], default=DeviceType.MOBILE_APP.value)
	connect.add_argument("--user", help="User identifier")
	connect.set_defaults(handler=_cmd_connect)

	stream = sub.add_parser("stream", help="Poll processed snapshots")
	stream.add_argument("--interval", type=float, default=1.0, help="Seconds to wait after each fetch")
	stream.add_argument("--runtime", type=float, help="Stop after this many seconds")
	stream.add_argument("--count", type=int, help="Stop after this many snapshots")
	stream.set_defaults(handler=_cmd_stream)

	watch = sub.add_parser("watch", help="Receive snapshots over the stream socket")
	watch.add_argument("--interval", type=float, default=1.0, help="Frame interval of the demo backend")
	watch.add_argument("--runtime", type=float, help="Stop after this many seconds")
	watch.add_argument("--count", type=int, help="Stop after this many snapshots")
	watch.set_defaults(handler=_cmd_watch)

	predict = sub.add_parser("predict", help="Fetch the current health prediction")
	predict.set_defaults(handler=_cmd_predict)

	session = sub.add_parser("session", help="Create or inspect sessions")
	session_sub = session.add_subparsers(dest="session_command", required=True)
	create = session_sub.add_parser("create", help="Start a session")
	create.add_argument("device", help="Device identifier")
	create.add_argument("--user", help="User identifier")
	create.add_argument("--type", dest="session_type", choices=[t.value for t in SessionType], default=SessionType.DAILY_MONITORING.value)
	create.set_defaults(handler=_cmd_session_create)
	get = session_sub.add_parser("get", help="Show a session")
	get.add_argument("session_id")
	get.set_defaults(handler=_cmd_session_get)

	logs = sub.add_parser("logs", help="Show backend processing logs")
	logs.add_argument("--limit", type=int, default=100)
	logs.set_defaults(handler=_cmd_logs)

	layers = sub.add_parser("layers", help="Show the layer processing demonstration")
	layers.set_defaults(handler=_cmd_layers)

	scan = sub.add_parser("scan", help="Discover nearby wearables")
	scan.add_argument("--timeout", dest="scan_timeout", type=float, default=10.0, help="Scan timeout in seconds")
	scan.add_argument("--name", action="append", help="Keep devices whose name contains this text")
	scan.add_argument("--limit", type=int, help="Maximum devices to return")
	scan.add_argument("--register", action="store_true", help="Register the strongest device with the backend")
	scan.add_argument("--type", dest="device_type", choices=[t.value for t in DeviceType], default=DeviceType.WATCH.value)
	scan.add_argument("--user", help="User identifier")
	scan.set_defaults(handler=_cmd_scan)

	serve = sub.add_parser("serve-demo", help="Serve the simulated backend over HTTP")
	serve.add_argument("--host", default="127.0.0.1")
	serve.add_argument("--port", type=int, default=8000)
	serve.add_argument("--interval", type=float, default=1.0, help="Seconds between socket frames")
	serve.set_defaults(handler=None, sync_handler=_cmd_serve_demo)

	return parser


def _configure_logging(verbose: bool) -> None:
	logging.basicConfig(
		level=logging.DEBUG if verbose else logging.WARNING,
		format="%(message)s",
		handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
	)


def main(argv: Optional[List[str]] = None) -> int:
	parser = _build_parser()
	args = parser.parse_args(argv)
	_configure_logging(args.verbose)
	sync_handler = getattr(args, "sync_handler", None)
	if sync_handler is not None:
		try:
			return sync_handler(args)
		except KeyboardInterrupt:
			return 130
	try:
		config = _build_config(args)
	except ValueError as exc:
		parser.error(str(exc))
	try:
		return asyncio.run(_run_command(args, config))
	except KeyboardInterrupt:
		return 130


if __name__ == "__main__":
	sys.exit(main())
