"""CLI entrypoints."""
from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Optional

import typer

from .core.errors import LungScanError, ModelLoadError
from .core.model_loader import load_model
from .core.pipeline import detect
from .core.utils import setup_logging
from .settings import load_settings

app = typer.Typer(help="Lung-scan cancer classification (non-diagnostic).")


@app.command("detect")
def detect_command(
    image: Path = typer.Argument(..., exists=True, dir_okay=False, help="Lung-scan image (PNG/JPEG)"),
    settings_file: Optional[Path] = typer.Option(None, "--settings", help="Settings YAML"),
    model: Optional[Path] = typer.Option(None, "--model", help="Override the model artifact path"),
    out_dir: Path = typer.Option(Path("outputs"), "--out-dir", help="Where heatmap.png and report.pdf go"),
):
    """Run the detection pipeline once and write the overlay and report."""
    settings = load_settings(settings_file)
    if model is not None:
        settings = settings.model_copy(update={"model_path": str(model)})
    setup_logging(settings.log_level)

    try:
        loaded = load_model(settings)
    except ModelLoadError as e:
        typer.echo(f"Model load failed: {e}", err=True)
        raise typer.Exit(code=2)

    mime_type, _ = mimetypes.guess_type(image.name)
    try:
        detection = asyncio.run(detect(loaded, image.read_bytes(), mime_type, settings))
    except LungScanError as e:
        typer.echo(f"Classification failed: {e}", err=True)
        raise typer.Exit(code=1)

    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / "heatmap.png").write_bytes(detection.heatmap_png)
    (out_dir / "report.pdf").write_bytes(detection.report_pdf)
    typer.echo(json.dumps(detection.summary()))


@app.command()
def serve(
    host: str = "0.0.0.0",
    port: int = 8000,
    settings_file: Optional[Path] = typer.Option(None, "--settings", help="Settings YAML"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from .app import create_app

    uvicorn.run(create_app(load_settings(settings_file)), host=host, port=port)


if __name__ == "__main__":  # pragma: no cover
    app()
