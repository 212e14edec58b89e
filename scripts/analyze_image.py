#!/usr/bin/env python3
"""
Send an outfit image to a running gateway and show the analysis record.

Usage examples:
    python scripts/analyze_image.py outfit.jpg
    python scripts/analyze_image.py outfit.jpg --type MATCH_OCCASION --occasion wedding
    python scripts/analyze_image.py outfit.jpg --endpoint http://localhost:8000 --raw
"""

import asyncio
import base64
import json
import time
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.json import JSON
from rich.panel import Panel
from rich.table import Table

from gateway_client.client import GatewayClient
from shared.config import get_settings
from shared.errors import GatewayError

console = Console()

ANALYSIS_TYPES = ("ANALYZE_OUTFIT", "ANALYZE_DETAILS", "MATCH_OCCASION", "GET_SUGGESTIONS")


def encode_image(image_path: Path) -> str:
    """Read an image file into a JPEG data URL payload."""
    encoded = base64.b64encode(image_path.read_bytes()).decode("ascii")
    return f"data:image/jpeg;base64,{encoded}"


def build_operation(operation_type: str, image_data: str, occasion: Optional[str]) -> dict[str, Any]:
    operation = {"type": operation_type, "imageData": image_data}
    if operation_type in ("MATCH_OCCASION", "GET_SUGGESTIONS"):
        operation["occasion"] = occasion
    return operation


def display_record(record: dict) -> None:
    """Display an analysis record in a readable format."""
    status = record.get("status", "N/A")
    status_style = "green" if status == "success" else "red"
    metadata = record.get("metadata", {})

    console.print(Panel(
        f"[bold]Analysis ID:[/bold] {record.get('id', 'N/A')}\n"
        f"[bold]Image ID:[/bold] {record.get('imageId', 'N/A')}\n"
        f"[bold]Type:[/bold] {record.get('analysisType', 'N/A')}\n"
        f"[bold]Status:[/bold] [{status_style}]{status}[/{status_style}]\n"
        f"[bold]Processing Time:[/bold] {metadata.get('processingTimeMs', 'N/A')}ms",
        title="[bold blue]Analysis Overview[/bold blue]",
        expand=False,
    ))

    if status != "success":
        console.print(f"[red]Error: {record.get('error', 'unknown error')}[/red]")
        return

    result = record.get("result")
    if isinstance(result, dict):
        table = Table(title="[bold green]Result[/bold green]")
        table.add_column("Field", style="cyan", no_wrap=True)
        table.add_column("Value", style="magenta")
        for key, value in result.items():
            if value is None:
                continue
            rendered = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
            table.add_row(key, rendered)
        console.print(table)

    tags = record.get("queryTags") or []
    if tags:
        console.print(f"[bold yellow]Tags:[/bold yellow] {', '.join(tags)}")


async def run_analysis(endpoint: str, operation: dict[str, Any]) -> dict:
    async with GatewayClient(endpoint) as client:
        console.print(f"[yellow]Sending {operation['type']} to: {endpoint}[/yellow]")
        start_time = time.time()
        record = await client.execute(operation)
        console.print(f"[green]✓ Response in {time.time() - start_time:.2f}s[/green]")
        return record


def cli_main(
    image: Path = typer.Argument(..., help="Path to the outfit image"),
    operation_type: str = typer.Option(
        "ANALYZE_OUTFIT", "--type", help=f"One of {', '.join(ANALYSIS_TYPES)}"
    ),
    occasion: Optional[str] = typer.Option(
        None, "--occasion", help="Occasion for MATCH_OCCASION and GET_SUGGESTIONS"
    ),
    endpoint: Optional[str] = typer.Option(
        None, "--endpoint", help="Gateway URL (defaults to GATEWAY_URL)"
    ),
    save_response: Optional[Path] = typer.Option(
        None, "--save-response", help="Save the full record to a JSON file"
    ),
    show_raw: bool = typer.Option(False, "--raw", help="Show raw JSON response"),
) -> None:
    """Analyze one outfit image through the gateway."""
    operation_type = operation_type.upper()
    if operation_type not in ANALYSIS_TYPES:
        console.print(f"[red]Unknown operation type: {operation_type}[/red]")
        raise typer.Exit(1)
    if operation_type in ("MATCH_OCCASION", "GET_SUGGESTIONS") and not occasion:
        console.print("[red]--occasion is required for this operation[/red]")
        raise typer.Exit(1)
    if not image.is_file():
        console.print(f"[red]Error: File {image} does not exist[/red]")
        raise typer.Exit(1)

    operation = build_operation(operation_type, encode_image(image), occasion)
    endpoint = endpoint or get_settings().gateway_url

    try:
        record = asyncio.run(run_analysis(endpoint, operation))
    except GatewayError as e:
        console.print(f"[red]✗ Request failed: {e.message}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(1)

    console.print()
    if show_raw:
        console.print(Panel(JSON.from_data(record), title="[bold]Raw JSON Response[/bold]", expand=False))
    else:
        display_record(record)

    if save_response:
        try:
            save_response.write_text(json.dumps(record, indent=2, ensure_ascii=False), encoding="utf-8")
            console.print(f"\n[green]Response saved to: {save_response}[/green]")
        except OSError as e:
            console.print(f"\n[red]Failed to save response: {e}[/red]")


if __name__ == "__main__":
    typer.run(cli_main)
