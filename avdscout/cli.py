# SPDX-License-Identifier: MIT
"""Typer CLI entrypoint for avdscout."""
from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional

import typer

from .avdscout import DeviceState
from .service import AvdPanelService, DeviceListing
from .settings import ConfigScope, SettingKey, SettingsStore

app = typer.Typer(add_completion=False, help="List, detect and launch Android Virtual Devices.")

_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s – %(message)s"


class EchoNotifier:
    def info(self, message: str) -> None:
        typer.echo(message)

    def error(self, message: str) -> None:
        typer.secho(message, fg=typer.colors.RED, err=True)


def configure_logging(log_file: Optional[Path], verbose: bool) -> logging.Logger:
    """Console handler plus an optional append-only log file."""
    log = logging.getLogger("avdscout")
    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    fmt = logging.Formatter(_LOG_FORMAT)
    if not log.handlers or all(isinstance(h, logging.NullHandler) for h in log.handlers):
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(logging.DEBUG if verbose else logging.WARNING)
        console.setFormatter(fmt)
        log.addHandler(console)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        sink.setFormatter(fmt)
        log.addHandler(sink)
    return log


@app.callback()
def main(
    ctx: typer.Context,
    settings: Optional[Path] = typer.Option(None, "--settings", help="Settings JSON file."),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Append log lines to this file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    log = configure_logging(log_file, verbose)
    ctx.obj = AvdPanelService(
        settings=SettingsStore(settings),
        notifier=EchoNotifier(),
        log=log.getChild("panel"),
    )


def _print_listing(listing: DeviceListing, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(listing.to_dict(), indent=2))
        return
    for device in listing.devices:
        marker = "●" if device.state is DeviceState.RUNNING else "○"
        typer.echo(f"{marker} {device.name}  [{device.state.value}]")
    if listing.error:
        typer.secho(listing.error, fg=typer.colors.YELLOW, err=True)


@app.command("list")
def list_cmd(
    ctx: typer.Context,
    as_json: bool = typer.Option(False, "--json", help="Print the raw device-list payload."),
    watch: bool = typer.Option(False, "--watch", help="Keep refreshing until interrupted."),
    interval: float = typer.Option(3.0, "--interval", min=0.1, help="Seconds between refreshes."),
) -> None:
    """List AVDs and whether each one is running."""
    if not watch:
        listing = ctx.obj.list_devices()
        _print_listing(listing, as_json)
        if listing.error and not listing.devices:
            raise typer.Exit(code=1)
        return

    try:
        while True:
            _print_listing(ctx.obj.list_devices(), as_json)
            time.sleep(interval)
            if not as_json:
                typer.echo("")
    except KeyboardInterrupt:
        pass


_SETTING_KEYS = (SettingKey.SDK_PATH, SettingKey.EMULATOR_PATH, SettingKey.ADB_PATH)


@app.command("config")
def config_cmd(
    ctx: typer.Context,
    key: Optional[str] = typer.Argument(None, help="sdkPath, emulatorPath or adbPath."),
    value: Optional[str] = typer.Argument(None, help="New value; omit to show the current one."),
) -> None:
    """Show the settings, or store VALUE under KEY."""
    store: SettingsStore = ctx.obj.settings
    if key is None:
        for name in _SETTING_KEYS:
            typer.echo(f"{name} = {store.get(name, '')}")
        return
    if key not in _SETTING_KEYS:
        raise typer.BadParameter(
            f"unknown setting {key!r}, expected one of: {', '.join(_SETTING_KEYS)}",
            param_hint="KEY",
        )
    if value is None:
        typer.echo(store.get(key, ""))
        return
    store.set(key, value, ConfigScope.GLOBAL)
    typer.echo(f"{key} = {value}")


@app.command()
def launch(ctx: typer.Context, name: str = typer.Argument(..., help="AVD name.")) -> None:
    """Start an emulator for NAME without waiting for it to boot."""
    ctx.obj.launch(name)


@app.command("detect-sdk")
def detect_sdk(ctx: typer.Context) -> None:
    """Search for an Android SDK and store it in the settings."""
    result = ctx.obj.detect_sdk()
    if not result.success:
        typer.secho("Could not automatically detect Android SDK location", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(result.sdk_root)


if __name__ == "__main__":  # pragma: no cover
    app()
