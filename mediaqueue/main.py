import typer
import threading
from datetime import timedelta
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from mediaqueue.config.loader import load_config
from mediaqueue.config.models import AppConfig
from mediaqueue.domain.models import MediaQueueItemConversionType, pascal_name, utc_now
from mediaqueue.hub.bridge import initialize_bridge
from mediaqueue.hub.clients import HubClients
from mediaqueue.hub.hub import MediaQueueHub
from mediaqueue.hub.mapper import MediaQueueItemMapper, get_duration_ms
from mediaqueue.hub.urls import HostUrlTracker, MediaUrlBuilder
from mediaqueue.infrastructure.event_bus import EventBus
from mediaqueue.infrastructure.exif_tool import ExifToolRotationReader
from mediaqueue.infrastructure.ffmpeg import FFmpegConverter
from mediaqueue.infrastructure.logging import setup_logging
from mediaqueue.infrastructure.media_catalog import MediaCatalog
from mediaqueue.infrastructure.queue_store import QueueStore
from mediaqueue.infrastructure.web_server import MediaQueueWebServer
from mediaqueue.pipeline.conversion_queue import MediaConversionQueue

app = typer.Typer(help="Media queue - background media conversion with live status")

DEFAULT_CONFIG = Path("conf/mediaqueue.yaml")


def _load(config_path: Path) -> AppConfig:
    try:
        return load_config(config_path)
    except FileNotFoundError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _open_store(config: AppConfig) -> QueueStore:
    return QueueStore(Path(config.queue.store_path) if config.queue.store_path else None)


def _catalog_index_path(config: AppConfig) -> Optional[Path]:
    if config.media.index_path:
        return Path(config.media.index_path)
    if config.queue.store_path:
        return Path(config.queue.store_path).with_name("media_index.json")
    return None


def _wait_for_interrupt():
    stop = threading.Event()
    while not stop.wait(1.0):
        pass


@app.command()
def serve(
    config_path: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Override server port"),
    host: Optional[str] = typer.Option(None, "--host", help="Override bind address"),
    sync: bool = typer.Option(False, "--sync", help="Queue optimized copies for media objects that have none"),
    log_path: Optional[Path] = typer.Option(
        None, "--log-path", help="Log file path (default: <log_dir>/mediaqueue.log)"
    ),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Run the media queue with its status page and push stream."""
    config = _load(config_path)
    # Apply CLI overrides
    if port is not None: config.server.port = port
    if host is not None: config.server.host = host
    if log_path is not None: config.general.log_path = str(log_path)
    if debug: config.general.debug = True

    logger = setup_logging(
        Path(config.general.log_dir),
        debug=config.general.debug,
        log_path=Path(config.general.log_path) if config.general.log_path else None,
        console=True,
    )

    media_queue = None
    web_server = None
    rotation_reader = None
    try:
        media_root = Path(config.media.root)
        catalog = MediaCatalog.scan(
            media_root,
            config.media.extensions,
            optimized_dir=config.media.optimized_dir,
            gallery_id=config.media.gallery_id,
            optimized_prefix=config.media.optimized_prefix,
            index_path=_catalog_index_path(config),
        )

        bus = EventBus()
        converter = FFmpegConverter(
            config.encoder.settings,
            media_root=media_root,
            optimized_root=media_root / config.media.optimized_dir,
            optimized_prefix=config.media.optimized_prefix,
            timeout_s=config.encoder.timeout_s,
            ffmpeg_path=config.encoder.ffmpeg_path,
        )
        try:
            rotation_reader = ExifToolRotationReader()
        except FileNotFoundError as exc:
            logger.warning(f"ExifTool unavailable, rotation will not be detected: {exc}")
        media_queue = MediaConversionQueue(
            bus,
            _open_store(config),
            catalog,
            converter,
            retention_days=config.queue.retention_days,
            rotation_calculator=rotation_reader.calculate_needed_rotation if rotation_reader else None,
            cancel_wait_timeout_s=config.queue.cancel_wait_timeout_s,
        )

        clients = HubClients(max_queue_size=config.server.client_queue_size)
        host_tracker = HostUrlTracker(config.server.default_host_url)
        mapper = MediaQueueItemMapper(catalog, MediaUrlBuilder(host_tracker, config.server.app_path))
        initialize_bridge(bus, media_queue, clients, mapper)

        media_queue.remove_orphaned_items()
        media_queue.delete_old_queue_items()

        if sync:
            queued = 0
            for media_object in catalog.media_objects():
                if media_object.optimized is not None:
                    continue
                if media_queue.is_waiting_in_queue_or_processing(
                        media_object.id, MediaQueueItemConversionType.CREATE_OPTIMIZED):
                    continue
                media_queue.add(media_object, MediaQueueItemConversionType.CREATE_OPTIMIZED)
                queued += 1
            typer.echo(f"Queued {queued} media objects for optimization.")

        if config.queue.auto_process and not media_queue.process():
            if not converter.is_available():
                typer.secho(
                    f"Warning: '{config.encoder.ffmpeg_path}' not found; queue will not be processed.",
                    fg=typer.colors.YELLOW,
                    err=True,
                )

        web_server = MediaQueueWebServer(MediaQueueHub, clients, media_queue, catalog, host_tracker, config.server)
        if not web_server.start():
            typer.secho(
                f"Error: could not bind to {config.server.host}:{config.server.port}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)

        typer.echo(f"Media queue running on port {web_server.server_address[1]}. Press Ctrl+C to stop.")
        _wait_for_interrupt()

    except KeyboardInterrupt:
        typer.secho("\n✓ Media queue stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        logger.exception("Fatal error")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    finally:
        if web_server is not None:
            web_server.stop()
        if media_queue is not None:
            media_queue.shutdown()
        if rotation_reader is not None:
            rotation_reader.terminate()


@app.command()
def status(
    config_path: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Include completed, canceled and failed items"),
):
    """Print the persisted media queue."""
    config = _load(config_path)
    items = sorted(_open_store(config).get_all(), key=lambda i: i.date_added)
    if not show_all:
        items = [i for i in items if not i.is_terminal]

    table = Table(title="Media Queue")
    table.add_column("ID", justify="right")
    table.add_column("Object", justify="right")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Added")
    table.add_column("Duration", justify="right")
    for item in items:
        table.add_row(
            str(item.media_queue_id),
            str(item.media_object_id),
            pascal_name(item.conversion_type),
            pascal_name(item.status),
            f"{item.date_added:%Y-%m-%d %H:%M:%S}",
            f"{get_duration_ms(item) / 1000:.1f}s",
        )

    console = Console()
    if items:
        console.print(table)
    else:
        console.print("Media queue is empty.")


@app.command()
def purge(
    config_path: Path = typer.Option(DEFAULT_CONFIG, "--config", "-c", help="Path to YAML config"),
    days: Optional[int] = typer.Option(None, "--days", help="Override retention window in days"),
):
    """Delete queue items older than the retention window (server must be stopped)."""
    config = _load(config_path)
    retention_days = days if days is not None else config.queue.retention_days
    cutoff = utc_now() - timedelta(days=retention_days)

    store = _open_store(config)
    removed = sum(1 for item in store.get_all() if item.date_added < cutoff and store.delete(item.media_queue_id))
    typer.echo(f"Removed {removed} queue items added before {cutoff:%Y-%m-%d}.")


if __name__ == "__main__":
    app()
