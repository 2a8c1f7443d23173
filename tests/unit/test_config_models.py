import pytest
from pathlib import Path
from pydantic import ValidationError
from mediaqueue.config.loader import load_config
from mediaqueue.config.models import (
    AppConfig, EncoderConfig, MediaEncoderSetting, QueueConfig, ServerConfig,
)

def test_defaults():
    config = AppConfig()
    assert config.server.port == 8780
    assert config.server.app_path == ""
    assert config.server.admin_token is None
    assert config.queue.retention_days == 180
    assert config.media.optimized_prefix == "zo_"
    assert [s.sequence for s in config.encoder.settings] == [0, 1, 2]

@pytest.mark.parametrize("raw,expected", [
    ("", ""),
    ("/", ""),
    ("gallery", "/gallery"),
    ("/gallery/", "/gallery"),
    (" /a/b/ ", "/a/b"),
])
def test_app_path_normalized(raw, expected):
    assert ServerConfig(app_path=raw).app_path == expected

def test_default_host_url_trailing_slash_stripped():
    assert ServerConfig(default_host_url="http://x.org/").default_host_url == "http://x.org"

def test_retention_days_must_be_positive():
    with pytest.raises(ValidationError):
        QueueConfig(retention_days=0)

def test_port_range():
    with pytest.raises(ValidationError):
        ServerConfig(port=70000)

def test_encoder_setting_extensions_normalized():
    setting = MediaEncoderSetting(source_extension=" .MP4 ", destination_extension=".MP4", arguments="-i x")
    assert setting.source_extension == ".mp4"
    assert setting.destination_extension == ".mp4"
    assert MediaEncoderSetting(source_extension="*video", destination_extension=".mp4",
                               arguments="").source_extension == "*video"

@pytest.mark.parametrize("field,value", [
    ("source_extension", "mp4"),
    ("destination_extension", "*video"),
])
def test_encoder_setting_invalid_extension(field, value):
    values = {"source_extension": ".mp4", "destination_extension": ".mp4", "arguments": ""}
    values[field] = value
    with pytest.raises(ValidationError):
        MediaEncoderSetting(**values)

def test_encoder_sequences_must_be_unique():
    with pytest.raises(ValidationError, match="unique sequence"):
        EncoderConfig(settings=[
            {"source_extension": ".mp4", "destination_extension": ".mp4", "arguments": "", "sequence": 1},
            {"source_extension": "*video", "destination_extension": ".mp4", "arguments": "", "sequence": 1},
        ])

def test_load_config(config_yaml_path, tmp_path):
    config = load_config(config_yaml_path)
    assert config.server.port == 9000
    assert config.server.app_path == "/gallery"
    assert config.server.admin_token == "abc"
    assert config.queue.retention_days == 30
    assert config.media.extensions == [".mp4", ".mp3"]

def test_load_config_encoder_settings_shorthand(config_yaml_path):
    config = load_config(config_yaml_path)
    assert len(config.encoder.settings) == 1
    assert config.encoder.settings[0].arguments == '-i "{source}" "{destination}"'

def test_load_config_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == AppConfig()

def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")

def test_sample_config_file_loads():
    sample = Path(__file__).resolve().parents[2] / "conf" / "mediaqueue.yaml"
    config = load_config(sample)
    assert config.server.port == 8780
    assert [s.source_extension for s in config.encoder.settings] == [".mp4", "*video", "*audio"]
