#!/usr/bin/env python3
"""
Network capability test -- throughput, latency and usage-profile verdicts.

Usage::

    python nettest.py                       # rich dashboard
    python nettest.py --simple              # plain text
    python nettest.py --json                # JSON to stdout
    python nettest.py -o result.json        # save to file
    python nettest.py --upload-endpoint https://example.com/up
    python nettest.py --list-profiles       # show the rating catalog
    python nettest.py --ping-count 20 --save-defaults
"""
from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import List, Optional

from netcap.config import (
    TestConfig,
    build_upload_targets,
    load_config,
    parse_upload_endpoints,
    save_config,
)
from netcap.constants import (
    MAX_DURATION,
    MAX_PARALLEL,
    MAX_PING_COUNT,
    MIN_DURATION,
    MIN_PARALLEL,
    MIN_PING_COUNT,
)
from netcap.latency import LatencyProgress
from netcap.orchestrator import PHASE_LATENCY, PhaseEvent, TestOrchestrator, TestState
from netcap.rating import DEFAULT_PROFILES
from netcap.stats import format_bps
from netcap.transfer import ProgressSnapshot
from netcap.transport import AiohttpTransport
from ui.dashboard import (
    PHASE_TITLES,
    ProgressDisplay,
    console,
    print_capabilities,
    print_header,
    print_log,
    print_profiles,
    print_results,
)
from ui.logging_setup import configure_logging
from ui.output import create_result_json, format_text_result, save_json


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def _validate(
    ping_count: int,
    download_duration: float,
    upload_duration: float,
    download_parallel: int,
    upload_parallel: int,
) -> None:
    """Raise ``ValueError`` if any parameter is out of range."""
    if not MIN_PING_COUNT <= ping_count <= MAX_PING_COUNT:
        raise ValueError(f"Ping count must be between {MIN_PING_COUNT} and {MAX_PING_COUNT}")
    if not MIN_DURATION <= download_duration <= MAX_DURATION:
        raise ValueError(f"Download duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    if not MIN_DURATION <= upload_duration <= MAX_DURATION:
        raise ValueError(f"Upload duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    if not MIN_PARALLEL <= download_parallel <= MAX_PARALLEL:
        raise ValueError(f"Download parallelism must be between {MIN_PARALLEL} and {MAX_PARALLEL}")
    if not MIN_PARALLEL <= upload_parallel <= MAX_PARALLEL:
        raise ValueError(f"Upload parallelism must be between {MIN_PARALLEL} and {MAX_PARALLEL}")


_PARAMETERS = (
    "download_duration",
    "upload_duration",
    "download_parallel",
    "upload_parallel",
    "ping_count",
)


def _build_config(args: argparse.Namespace) -> TestConfig:
    """File settings and environment, overridden by command-line flags."""
    config = TestConfig.from_settings(load_config())
    for name in _PARAMETERS:
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    if args.upload_endpoint:
        extra = parse_upload_endpoints(",".join(args.upload_endpoint), name_prefix="Command-line endpoint")
        config.upload_targets = build_upload_targets(extra + config.upload_targets, defaults=())
    return config


def _save_defaults(args: argparse.Namespace, config: TestConfig) -> str:
    """Persist the validated run parameters as the new file defaults."""
    settings = load_config()
    for name in _PARAMETERS:
        settings[name] = getattr(config, name)
    if args.upload_endpoint:
        urls = [*args.upload_endpoint, *settings.get("upload_endpoints", [])]
        settings["upload_endpoints"] = list(dict.fromkeys(url.strip() for url in urls if url.strip()))
    return save_config(settings)


# ---------------------------------------------------------------------------
# Dashboard wiring
# ---------------------------------------------------------------------------

class _DashboardListener:
    """Turns orchestrator events into progress-bar updates."""

    def __init__(self, config: TestConfig) -> None:
        self.config = config
        self.display: Optional[ProgressDisplay] = None
        self.upload_target: Optional[dict] = None

    def __call__(self, event: PhaseEvent) -> None:
        if event.kind == "start":
            self.display = ProgressDisplay()
            self.display.start(PHASE_TITLES[event.phase])
        elif event.kind == "progress" and self.display:
            self._progress(event)
        elif event.kind == "target":
            self.upload_target = {"name": event.data.name, "url": event.data.url}
            if self.display:
                verb = "Upload endpoint" if event.data.reason == "initial" else "Switched to"
                self.display.note(f"{verb}: {event.message}")
        elif event.kind in ("complete", "error", "fatal") or (
            event.kind == "state" and event.data is TestState.STOPPED
        ):
            self.close()

    def _progress(self, event: PhaseEvent) -> None:
        data = event.data
        if event.phase == PHASE_LATENCY and isinstance(data, LatencyProgress):
            total = max(1, self.config.ping_count)
            detail = f"{data.last_ms:.1f} ms" if data.last_ms is not None else f"{data.drops} drops"
            self.display.update((data.count + data.drops) / total, detail)
        elif isinstance(data, ProgressSnapshot):
            duration = (
                self.config.download_duration
                if event.phase == "download"
                else self.config.upload_duration
            )
            self.display.update(data.elapsed_seconds / duration, format_bps(data.bits_per_second))

    def close(self) -> None:
        if self.display:
            self.display.stop()
            self.display = None


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_test(
    config: TestConfig,
    *,
    json_output: bool = False,
    output_file: Optional[str] = None,
    simple: bool = False,
    show_log: bool = False,
) -> Optional[dict]:
    """Execute one run and return a JSON-serialisable dict (None if stopped)."""
    show_ui = not json_output and not simple
    if show_ui:
        print_header()

    listener = _DashboardListener(config)

    async with AiohttpTransport(
        connections=max(config.download_parallel, config.upload_parallel)
    ) as transport:
        orchestrator = TestOrchestrator(config, transport, on_event=listener if show_ui else None)

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, orchestrator.stop)
        except (NotImplementedError, RuntimeError):
            pass  # Windows: KeyboardInterrupt handled in main()

        try:
            results = await orchestrator.run()
        finally:
            listener.close()
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass

    if orchestrator.state is TestState.STOPPED:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        return None
    if orchestrator.state is TestState.FAILED:
        console.print(f"\n[red]Test failed: {orchestrator.fatal_error}[/red]")
        return None

    capabilities = orchestrator.capabilities()

    if show_ui:
        print_results(results)
        print_capabilities(capabilities)
        if show_log:
            print_log(orchestrator.log)
        colour = "yellow" if orchestrator.warnings else "green"
        console.print(f"\n[{colour}]{orchestrator.status_label}[/{colour}]")
    elif simple:
        print(format_text_result(results, capabilities))

    result_json = create_result_json(
        results,
        capabilities,
        status=orchestrator.status_label,
        upload_target=listener.upload_target,
        log=orchestrator.log,
    )

    if json_output:
        print(json.dumps(result_json, indent=2, ensure_ascii=False))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    return result_json


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Network capability test -- throughput, latency and usage verdicts",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--list-profiles", action="store_true", help="List usage profiles and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")
    parser.add_argument("--log", action="store_true", help="Print the timestamped run log after the results")
    parser.add_argument(
        "--save-defaults",
        action="store_true",
        help="Save the given test parameters to ~/.netcap/config.json and exit",
    )

    # Test parameters (unset flags fall back to ~/.netcap/config.json)
    parser.add_argument("--ping-count", type=int, metavar="N", help="Number of latency probes (default: 12)")
    parser.add_argument("--download-duration", type=float, metavar="SECS", help="Download duration in seconds (default: 6)")
    parser.add_argument("--upload-duration", type=float, metavar="SECS", help="Upload duration in seconds (default: 5)")
    parser.add_argument("--download-parallel", type=int, metavar="N", help="Concurrent download requests (default: 6)")
    parser.add_argument("--upload-parallel", type=int, metavar="N", help="Concurrent upload requests (default: 4)")
    parser.add_argument(
        "--upload-endpoint",
        action="append",
        metavar="URL",
        help="Extra upload endpoint, tried first (repeatable)",
    )

    args = parser.parse_args(argv)

    configure_logging("DEBUG" if args.verbose else "WARNING")

    if args.list_profiles:
        print_profiles(DEFAULT_PROFILES)
        return

    config = _build_config(args)

    try:
        _validate(
            ping_count=config.ping_count,
            download_duration=config.download_duration,
            upload_duration=config.upload_duration,
            download_parallel=config.download_parallel,
            upload_parallel=config.upload_parallel,
        )
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    if args.save_defaults:
        path = _save_defaults(args, config)
        console.print(f"[green]Defaults saved to:[/green] {path}")
        return

    try:
        result = asyncio.run(
            run_test(
                config,
                json_output=args.json,
                output_file=args.output,
                simple=args.simple,
                show_log=args.log,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as exc:
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)

    if result is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
