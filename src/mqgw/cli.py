"""MQGW command line interface."""

from __future__ import annotations

import subprocess
import sys
from typing import Optional

import requests
import typer
import uvicorn

from mqgw.serving.client import GatewayClient, GatewayClientError
from mqgw.serving.gateway import create_app
from mqgw.utils.config import load_platform_config
from mqgw.utils.logging import configure_logging, get_logger

configure_logging()
LOG = get_logger(__name__)

app = typer.Typer(add_completion=False)
platform_cfg = load_platform_config()


def run(cmd: list[str]) -> None:
    LOG.info("Running command", extra={"cmd": " ".join(cmd)})
    subprocess.run(cmd, check=True)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
) -> None:
    """Connect to the broker, then serve the HTTP gateway."""
    gateway_app = create_app(platform_cfg)
    uvicorn.run(
        gateway_app,
        host=host or platform_cfg.gateway.host,
        port=port or platform_cfg.gateway.port,
        log_config=None,
    )


@app.command()
def health(gateway_url: str = typer.Option("http://localhost:8080", help="Gateway base URL")) -> None:
    """Query the gateway health endpoint."""
    client = GatewayClient(gateway_url)
    try:
        status_code, body = client.health()
    except requests.RequestException as exc:
        typer.echo(f"Health check failed: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(body)
    if status_code != 200:
        raise typer.Exit(code=1)


@app.command()
def predict(
    image_path: str = typer.Argument(..., help="Path to a 28x28 grayscale PNG"),
    gateway_url: str = typer.Option("http://localhost:8080", help="Gateway base URL"),
) -> None:
    """Send an image to the gateway and print the predicted digit."""
    client = GatewayClient(gateway_url)
    try:
        result = client.predict_file(image_path)
    except (ValueError, OSError, GatewayClientError) as exc:
        typer.echo(f"Failed to get prediction: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Prediction result: digit={result.digit} probabilities={result.probabilities}")


@app.command()
def loadgen(
    rps: int = typer.Option(20, help="Requests per second"),
    duration: int = typer.Option(30, help="Duration in seconds"),
    gateway_url: str = typer.Option("http://localhost:8080"),
) -> None:
    cmd = [
        sys.executable,
        "scripts/send_load.py",
        "--rps",
        str(rps),
        "--duration",
        str(duration),
        "--gateway",
        gateway_url,
    ]
    run(cmd)


if __name__ == "__main__":
    app()
