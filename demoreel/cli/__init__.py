"""CLI entrypoint for demoreel administrative commands."""

from __future__ import annotations

import asyncio
import logging
import posixpath
import tempfile
from pathlib import Path

import typer
from dotenv import load_dotenv

from .. import __version__
from ..config import load_config
from ..storage import get_storage
from ..trackdata.errors import SourceUnreadableError
from ..trackdata.ffmpeg import FfmpegGenerator
from ..trackdata.keys import artifact_key
from ..trackdata.peaks import DEFAULT_SCALE
from ..trackdata.precompute import precompute_tree
from ..trackdata.staleness import check_stale
from ..trackdata.store import TrackDataStore

app = typer.Typer(
    name="demoreel",
    help="Waveform track data tools for shared demo reviews",
    no_args_is_help=True,
)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output")) -> None:
    """Load .env and configure logging before any command runs."""
    _ = load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("version")
def version() -> None:
    """Print the current version of demoreel."""
    typer.echo(f"demoreel version {__version__}")


@app.command("precompute")
def precompute(
    input_dir: Path = typer.Argument(..., help="Directory tree containing audio folders"),
    scale: int = typer.Option(DEFAULT_SCALE, "--scale", help="Samples per peak window"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Regenerate existing outputs"),
    running_order: bool = typer.Option(
        True, "--running-order/--no-running-order", help="Write running-order.v2.json per folder"
    ),
) -> None:
    """Precompute track data JSON beside every .wav/.mp3/.ogg file under INPUT_DIR."""
    root = input_dir.resolve()
    if not root.is_dir():
        typer.echo(f"Error: Input path is not a directory: {root}", err=True)
        raise typer.Exit(code=1)
    if scale <= 0:
        typer.echo(f"Error: --scale must be a positive integer, got {scale}", err=True)
        raise typer.Exit(code=1)

    report = asyncio.run(
        precompute_tree(root, FfmpegGenerator(), scale, overwrite, running_order)
    )

    if report.folders == 0:
        typer.echo("No audio files found.")
        return

    typer.echo(
        f"✓ {report.folders} folder(s): {report.generated} generated, "
        f"{report.skipped} skipped, {len(report.failed)} failed, "
        f"{report.running_orders_written} running order(s) written"
    )
    for path in report.failed:
        typer.echo(f"  ✗ {path}", err=True)
    if report.failed:
        raise typer.Exit(code=1)


@app.command("check")
def check(audio_path: str = typer.Argument(..., help="Storage path of the audio file")) -> None:
    """Report whether a stored track's data exists and is current."""

    async def _check() -> None:
        config = load_config()
        store = TrackDataStore(get_storage(config), config.storage.root_dir)
        verdict = await check_stale(store, audio_path, artifact_key(audio_path))
        if not verdict.exists:
            typer.echo(f"{audio_path}: missing")
        elif verdict.needsRegeneration:
            typer.echo(f"{audio_path}: stale")
        else:
            typer.echo(f"{audio_path}: up to date")

    asyncio.run(_check())


@app.command("regenerate")
def regenerate(
    audio_path: str = typer.Argument(..., help="Storage path of the audio file"),
    scale: int | None = typer.Option(None, "--scale", help="Samples per peak window"),
    force: bool = typer.Option(False, "--force", help="Regenerate even if up to date"),
) -> None:
    """Download a stored track, regenerate its data with ffmpeg and store it."""

    async def _regenerate() -> None:
        config = load_config()
        storage = get_storage(config)
        store = TrackDataStore(storage, config.storage.root_dir)
        key = artifact_key(audio_path)

        if not force:
            verdict = await check_stale(store, audio_path, key)
            if verdict.exists and not verdict.needsRegeneration:
                typer.echo(f"{audio_path}: up to date (use --force to regenerate)")
                return

        source_key = store.resolve(audio_path)
        if await asyncio.to_thread(storage.get_metadata, source_key) is None:
            typer.echo(f"Error: audio file not found: {audio_path}", err=True)
            raise typer.Exit(code=1)

        suffix = posixpath.splitext(audio_path)[1]
        with tempfile.TemporaryDirectory() as tmp_dir:
            local_path = Path(tmp_dir) / f"source{suffix}"
            with open(local_path, "wb") as f:
                for chunk in storage.iter_bytes(source_key):
                    f.write(chunk)

            typer.echo(f"Generating track data for {audio_path}...")
            try:
                track_data = await FfmpegGenerator().generate(
                    str(local_path), scale or config.track_data.scale
                )
            except SourceUnreadableError as e:
                typer.echo(f"Error: {e.reason}", err=True)
                raise typer.Exit(code=1)

        await store.put(key, track_data)
        typer.echo(
            f"✓ Saved {key} ({track_data.duration:.2f}s, {len(track_data.peaks)} peaks)"
        )

    asyncio.run(_regenerate())


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", "--host"),
    port: int = typer.Option(8000, "--port"),
) -> None:
    """Run the HTTP API."""
    from ..main import main as run_server

    run_server(host=host, port=port)
