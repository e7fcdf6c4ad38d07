"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
import webbrowser

import typer

from beaconctl.core.distance import DEFAULT_MEASURED_POWER
from beaconctl.core.engine import DEFAULT_DEBOUNCE_S
from beaconctl.core.errors import BeaconctlError
from beaconctl.core.model import DetectionStatus
from beaconctl.core.service import BeaconService

app = typer.Typer(help="Eddystone beacon detection with one-shot resource opening")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_service(**kwargs) -> BeaconService:
    service = BeaconService(**kwargs)
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    for warning in getattr(service, "runtime_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.command("beacons")
def list_beacons() -> None:
    """List configured beacons and their resources."""
    try:
        service = _build_service()
        beacons = service.list_beacons()
        if not beacons:
            typer.echo("No beacons configured")
            raise typer.Exit(code=1)

        for beacon in beacons:
            label = f" {beacon.label}" if beacon.label else ""
            typer.echo(f"{beacon.identifier}{label} -> {beacon.url}")
    except BeaconctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("decode")
def decode_payload(payload: str = typer.Argument(..., help="Eddystone service data as hex")) -> None:
    """Decode an Eddystone service-data payload and look it up."""
    try:
        service = _build_service()
        frame, target = service.decode(payload)
        typer.echo(f"Frame: {frame.kind.value}")
        if frame.is_uid:
            typer.echo(f"Namespace: {frame.namespace}")
            typer.echo(f"Instance: {frame.instance}")
            matched = f"{target.identifier} -> {target.url}" if target else "<no-match>"
            typer.echo(f"Beacon: {matched}")
    except BeaconctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan(
    seconds: float | None = typer.Option(None, "--seconds", help="Stop after N seconds"),
    debounce: float = typer.Option(DEFAULT_DEBOUNCE_S, "--debounce", help="Seconds without a sighting before reset"),
    measured_power: int = typer.Option(
        DEFAULT_MEASURED_POWER, "--measured-power", help="Expected RSSI in dBm at one meter"
    ),
    auto_open: bool = typer.Option(True, "--open/--no-open", help="Open a beacon's URL on first sighting"),
) -> None:
    """Scan for configured Eddystone beacons and report detections."""
    try:
        service = _build_service(debounce_s=debounce, measured_power=measured_power)
        last: dict[str, object] = {"detected": False, "identifier": None}

        def _on_status(status: DetectionStatus) -> None:
            if status.is_detected and status.current_identifier != last["identifier"]:
                typer.echo(
                    f"Detected {status.namespace}/{status.instance} "
                    f"{status.frame_kind_label} rssi={status.rssi} {status.distance_label}"
                )
            elif not status.is_detected and last["detected"]:
                typer.echo(status.status_text)
            last["detected"] = status.is_detected
            last["identifier"] = status.current_identifier

            if status.open_requested:
                url = service.consume_open_request()
                if url and auto_open:
                    typer.echo(f"Opening {url}")
                    webbrowser.open(url)
                elif url:
                    typer.echo(f"Resource: {url}")

        service.subscribe(_on_status)
        typer.echo(service.status().status_text)
        service.scan(duration_s=seconds)
    except KeyboardInterrupt:
        typer.echo("Stopped")
    except BeaconctlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
