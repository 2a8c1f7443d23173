from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

class GeneralConfig(BaseModel):
    debug: bool = False
    log_dir: str = "logs"
    log_path: Optional[str] = None

class ServerConfig(BaseModel):
    """Web surface: push stream, pull queries and the media handler."""
    host: str = "0.0.0.0"
    port: int = Field(default=8780, ge=0, le=65535)  # 0 picks a free port
    app_path: str = ""
    default_host_url: str = "http://localhost:8780"
    admin_token: Optional[str] = None
    client_queue_size: int = Field(default=1000, ge=1)
    keepalive_s: float = Field(default=15.0, gt=0)

    @field_validator('app_path')
    @classmethod
    def normalize_app_path(cls, v: str) -> str:
        v = v.strip().strip("/")
        return f"/{v}" if v else ""

    @field_validator('default_host_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

class QueueConfig(BaseModel):
    store_path: Optional[str] = "mediaqueue.json"
    retention_days: int = Field(default=180, ge=1)
    auto_process: bool = True
    cancel_wait_timeout_s: float = Field(default=30.0, gt=0)

class MediaConfig(BaseModel):
    root: str = "media"
    optimized_dir: str = "_optimized"
    extensions: List[str] = Field(default_factory=lambda: [
        ".mp4", ".mov", ".avi", ".mkv", ".webm", ".flv", ".wmv", ".mp3", ".wav", ".m4a", ".ogg",
    ])
    gallery_id: int = Field(default=1, ge=1)
    optimized_prefix: str = "zo_"
    # Path -> ID index; defaults to media_index.json beside the queue store
    index_path: Optional[str] = None

class MediaEncoderSetting(BaseModel):
    """One FFmpeg recipe. ``source_extension`` is ``.ext`` or ``*<major mime type>``."""
    source_extension: str
    destination_extension: str
    arguments: str
    sequence: int = 0

    @field_validator('source_extension')
    @classmethod
    def validate_source_extension(cls, v: str) -> str:
        v = v.strip().lower()
        if not v.startswith((".", "*")):
            raise ValueError(f"Invalid source extension {v!r}. Use '.ext' or '*video'/'*audio'.")
        return v

    @field_validator('destination_extension')
    @classmethod
    def validate_destination_extension(cls, v: str) -> str:
        v = v.strip().lower()
        if not v.startswith("."):
            raise ValueError(f"Invalid destination extension {v!r}. Must start with '.'.")
        return v

_VIDEO_ARGS = (
    '-y -i "{source}" -vf "{autorotate},scale=trunc(iw/2)*2:trunc(ih/2)*2" '
    '-vcodec libx264 -movflags +faststart -metadata:s:v:0 rotate=0 "{destination}"'
)
_AUDIO_ARGS = '-y -i "{source}" "{destination}"'

def _default_encoder_settings() -> List[MediaEncoderSetting]:
    return [
        MediaEncoderSetting(source_extension=".mp4", destination_extension=".mp4", arguments=_VIDEO_ARGS, sequence=0),
        MediaEncoderSetting(source_extension="*video", destination_extension=".mp4", arguments=_VIDEO_ARGS, sequence=1),
        MediaEncoderSetting(source_extension="*audio", destination_extension=".m4a", arguments=_AUDIO_ARGS, sequence=2),
    ]

class EncoderConfig(BaseModel):
    ffmpeg_path: str = "ffmpeg"
    timeout_s: float = Field(default=3600.0, gt=0)
    settings: List[MediaEncoderSetting] = Field(default_factory=_default_encoder_settings)

    @model_validator(mode="after")
    def validate_unique_sequence(self):
        sequences = [s.sequence for s in self.settings]
        if len(sequences) != len(set(sequences)):
            raise ValueError("encoder settings must have unique sequence numbers")
        return self

class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
