import logging
import os
import queue
import shlex
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional
from pydantic import BaseModel
from mediaqueue.config.models import MediaEncoderSetting
from mediaqueue.domain.models import (
    MediaAssetRotateFlip, MediaFile, MediaObject, MediaQueueItem, MediaQueueItemConversionType,
)

ROTATE_ARGUMENTS = (
    '-y -i "{source}" -vf "{autorotate}" -q:a 0 -q:v 0 -acodec copy '
    '-metadata:s:v:0 rotate=0 "{destination}"'
)

_TRANSPOSE = {0: "", 90: "transpose=1", 180: "transpose=2,transpose=2", 270: "transpose=2"}


def autorotate_filter(amount: MediaAssetRotateFlip) -> str:
    """FFmpeg video filter that applies a rotate/flip amount ("null" when nothing to do)."""
    if amount == MediaAssetRotateFlip.NOT_SPECIFIED:
        return "null"
    # ROTATE_<deg>_FLIP_<NONE|X|Y>
    _, degrees, _, flip = amount.name.split("_")
    parts = [p for p in (_TRANSPOSE[int(degrees)], {"X": "hflip", "Y": "vflip"}.get(flip, "")) if p]
    return ",".join(parts) or "null"


def unique_path(path: Path) -> Path:
    """Returns ``path`` or, when it exists, ``stem(1).ext``, ``stem(2).ext``..."""
    candidate = path
    n = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.stem}({n}){path.suffix}")
        n += 1
    return candidate


class ConversionResult(BaseModel):
    file_created: bool = False
    canceled: bool = False
    destination: Optional[Path] = None
    output: str = ""


class FFmpegConverter:
    """Runs FFmpeg for media queue items (optimized copies and video rotation)."""

    def __init__(
        self,
        encoder_settings: List[MediaEncoderSetting],
        media_root: Path,
        optimized_root: Path,
        optimized_prefix: str = "zo_",
        timeout_s: float = 3600.0,
        ffmpeg_path: str = "ffmpeg",
    ):
        self.encoder_settings = sorted(encoder_settings, key=lambda s: s.sequence)
        self.media_root = Path(media_root)
        self.optimized_root = Path(optimized_root)
        self.optimized_prefix = optimized_prefix
        self.timeout_s = timeout_s
        self.ffmpeg_path = ffmpeg_path
        self.logger = logging.getLogger(__name__)

    def is_available(self) -> bool:
        return shutil.which(self.ffmpeg_path) is not None

    def encoder_settings_for(self, media_file: MediaFile) -> List[MediaEncoderSetting]:
        """Settings matching the file's extension or ``*<major mime type>``, in sequence order."""
        ext = Path(media_file.file_name).suffix.lower()
        wildcard = f"*{media_file.major_type}"
        return [s for s in self.encoder_settings if s.source_extension in (ext, wildcard)]

    def build_command(self, arguments: str, source: Path, destination: Path,
                      rotate_flip: MediaAssetRotateFlip = MediaAssetRotateFlip.NOT_SPECIFIED) -> List[str]:
        values = {
            "{source}": str(source),
            "{destination}": str(destination),
            "{autorotate}": autorotate_filter(rotate_flip),
        }
        cmd = [self.ffmpeg_path]
        for token in shlex.split(arguments):
            for placeholder, value in values.items():
                token = token.replace(placeholder, value)
            cmd.append(token)
        return cmd

    def convert(
        self,
        item: MediaQueueItem,
        media_object: MediaObject,
        cancel_event: threading.Event,
        on_output: Callable[[str], None],
        on_new_filename: Callable[[str], None],
    ) -> ConversionResult:
        if item.conversion_type == MediaQueueItemConversionType.CREATE_OPTIMIZED:
            return self._create_optimized(item, media_object, cancel_event, on_output, on_new_filename)
        if item.conversion_type == MediaQueueItemConversionType.ROTATE_VIDEO:
            return self._rotate_video(item, media_object, cancel_event, on_output, on_new_filename)
        raise ValueError(f"Unsupported conversion type: {item.conversion_type!r}")

    def _optimized_destination(self, media_object: MediaObject, extension: str) -> Path:
        source = media_object.original.path
        try:
            relative_dir = source.parent.relative_to(self.media_root)
        except ValueError:
            relative_dir = Path()
        return unique_path(self.optimized_root / relative_dir / f"{self.optimized_prefix}{source.stem}{extension}")

    def _create_optimized(self, item, media_object, cancel_event, on_output, on_new_filename) -> ConversionResult:
        settings = self.encoder_settings_for(media_object.original)
        if not settings:
            msg = f"No encoder setting matches '{media_object.original.file_name}' ({media_object.original.mime_type})."
            on_output(msg)
            return ConversionResult(output=msg)

        result = ConversionResult()
        for setting in settings:
            destination = self._optimized_destination(media_object, setting.destination_extension)
            destination.parent.mkdir(parents=True, exist_ok=True)
            on_new_filename(destination.name)

            cmd = self.build_command(setting.arguments, media_object.original.path, destination, item.rotate_flip_amount)
            result = self._run(cmd, destination, cancel_event, on_output)
            if result.file_created or result.canceled:
                return result

            # Could not create the file with this setting; fall through to the next one
            on_output(f"FAILURE: FFmpeg was not able to create file '{destination.name}'.")
        return result

    def _rotate_video(self, item, media_object, cancel_event, on_output, on_new_filename) -> ConversionResult:
        original = media_object.original.path
        destination = unique_path(original)
        on_new_filename(destination.name)

        cmd = self.build_command(ROTATE_ARGUMENTS, original, destination, item.rotate_flip_amount)
        result = self._run(cmd, destination, cancel_event, on_output)
        if result.file_created:
            os.replace(destination, original)
            result.destination = original
        return result

    def _run(self, cmd: List[str], destination: Path, cancel_event: threading.Event,
             on_output: Callable[[str], None]) -> ConversionResult:
        """Executes ffmpeg, streaming its output until exit, cancel or timeout."""
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")
        start_time = time.monotonic()

        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            universal_newlines=True,
            bufsize=1
        )

        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()

        def _reader():
            if not process.stdout:
                output_queue.put(None)
                return
            for line in process.stdout:
                output_queue.put(line)
            output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        lines: List[str] = []
        stopped_reason = None
        while True:
            if cancel_event.is_set():
                stopped_reason = "canceled"
            elif time.monotonic() - start_time > self.timeout_s:
                stopped_reason = "timeout"
            if stopped_reason:
                self._terminate(process)
                break

            try:
                line = output_queue.get(timeout=0.1)
            except queue.Empty:
                # Exited without the reader reaching EOF (e.g. stdout closed early)
                if process.poll() is not None and not reader_thread.is_alive() and output_queue.empty():
                    break
                continue

            if line is None:
                break
            line = line.rstrip()
            if line:
                lines.append(line)
                on_output(line)

        process.wait()
        output = "\n".join(lines)

        if stopped_reason:
            self.logger.info(f"FFMPEG_STOPPED: {destination.name} ({stopped_reason})")
            if destination.exists():
                destination.unlink()
            if stopped_reason == "timeout":
                on_output(f"FFmpeg timed out after {self.timeout_s:.0f}s.")
            return ConversionResult(canceled=stopped_reason == "canceled", destination=destination, output=output)

        file_created = destination.exists() and destination.stat().st_size > 0
        if process.returncode != 0:
            self.logger.warning(f"FFMPEG_END: {destination.name} exited with code {process.returncode}")
        return ConversionResult(file_created=file_created, destination=destination, output=output)

    @staticmethod
    def _terminate(process: subprocess.Popen):
        process.terminate()
        try:
            process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
