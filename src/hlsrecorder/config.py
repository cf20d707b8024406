"""
Configuration module for HLS Recorder.
Loads settings from YAML file and provides typed configuration.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


@dataclass
class TelegramConfig:
    """Telegram chat used for progress messages."""
    api_id: int
    api_hash: str
    chat_id: int
    session_name: str = "hls_recorder"


@dataclass
class RecorderConfig:
    """Playlist polling and segment download settings."""
    output_dir: str = "."
    workers: int = 2              # concurrent segment downloads
    segment_retries: int = 5      # attempts per segment before it is dropped
    max_playlist_errors: int = 10  # consecutive playlist failures before giving up
    http_timeout: float = 60.0    # seconds, per request
    http_retries: int = 3         # transport-level retries for transient failures
    queue_size: int = 10000
    poll_interval: Optional[float] = None  # None = follow playlist target duration
    progress_interval: float = 3.0  # seconds between chat progress edits
    user_agent: str = ""


@dataclass
class UploadConfig:
    """Storage upload settings."""
    enabled: bool = False
    destination_dir: str = "./uploads"  # mounted storage root
    delete_after_upload: bool = False


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    file: str = "./logs/recorder.log"
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration container."""
    telegram: Optional[TelegramConfig] = None
    recorder: RecorderConfig = field(default_factory=RecorderConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def as_bool(value: Any, default: bool) -> bool:
    """Parse bool from YAML value with safe fallbacks."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "true", "yes", "y", "on"):
            return True
        if text in ("0", "false", "no", "n", "off"):
            return False
    return default


def as_float(value: Any, default: float) -> float:
    """Parse float from YAML value with safe fallbacks."""
    if value is None:
        return default
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", "."))
        except ValueError:
            return default
    return default


def as_int(value: Any, default: int) -> int:
    """Parse int from YAML value with safe fallbacks."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            return int(float(text.replace(",", ".")))
        except ValueError:
            return default
    return default


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Section '{name}' must be a mapping")
    return section


def parse_config(data: Dict[str, Any]) -> Config:
    """
    Build a Config from an already loaded YAML mapping.

    Raises:
        ValueError: If a section is malformed or a required field is missing.
    """
    telegram_config = None
    telegram_data = _section(data, 'telegram')
    if telegram_data:
        for field_name in ('api_id', 'api_hash', 'chat_id'):
            if field_name not in telegram_data:
                raise ValueError(f"Missing required field: telegram.{field_name}")
        telegram_config = TelegramConfig(
            api_id=int(telegram_data['api_id']),
            api_hash=str(telegram_data['api_hash']),
            chat_id=int(telegram_data['chat_id']),
            session_name=telegram_data.get('session_name', 'hls_recorder'),
        )

    recorder_data = _section(data, 'recorder')
    poll_interval = recorder_data.get('poll_interval')
    recorder_config = RecorderConfig(
        output_dir=str(recorder_data.get('output_dir', '.')),
        workers=max(1, as_int(recorder_data.get('workers'), 2)),
        segment_retries=max(1, as_int(recorder_data.get('segment_retries'), 5)),
        max_playlist_errors=max(1, as_int(recorder_data.get('max_playlist_errors'), 10)),
        http_timeout=max(1.0, as_float(recorder_data.get('http_timeout'), 60.0)),
        http_retries=max(0, as_int(recorder_data.get('http_retries'), 3)),
        queue_size=max(0, as_int(recorder_data.get('queue_size'), 10000)),
        poll_interval=None if poll_interval is None else max(0.0, as_float(poll_interval, 0.0)),
        progress_interval=max(0.5, as_float(recorder_data.get('progress_interval'), 3.0)),
        user_agent=str(recorder_data.get('user_agent', '') or ''),
    )

    upload_data = _section(data, 'upload')
    upload_config = UploadConfig(
        enabled=as_bool(upload_data.get('enabled'), False),
        destination_dir=str(upload_data.get('destination_dir', './uploads')),
        delete_after_upload=as_bool(upload_data.get('delete_after_upload'), False),
    )

    logging_data = _section(data, 'logging')
    logging_config = LoggingConfig(
        level=logging_data.get('level', 'INFO'),
        file=logging_data.get('file', './logs/recorder.log'),
        max_size_mb=as_int(logging_data.get('max_size_mb'), 10),
        backup_count=as_int(logging_data.get('backup_count'), 5),
    )

    return Config(
        telegram=telegram_config,
        recorder=recorder_config,
        upload=upload_config,
        logging=logging_config,
    )


def load_config(config_path: str = "config.yaml") -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file.

    Returns:
        Config object with all settings.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If the file is empty or malformed.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            f"Please create a config.yaml file. See config.example.yaml for reference."
        )

    with open(config_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    if not data:
        raise ValueError("Configuration file is empty")
    if not isinstance(data, dict):
        raise ValueError("Configuration file must contain a mapping")

    return parse_config(data)


def create_example_config(path: str = "config.example.yaml") -> None:
    """Create an example configuration file."""
    example = """# HLS Recorder Configuration

telegram:  # Optional, progress messages are only logged without it
  api_id: YOUR_API_ID  # Get from https://my.telegram.org
  api_hash: YOUR_API_HASH
  chat_id: -1001234567890  # Chat that receives progress messages
  session_name: hls_recorder

recorder:
  output_dir: .  # Session directories are created here
  workers: 2
  segment_retries: 5
  max_playlist_errors: 10
  http_timeout: 60
  http_retries: 3
  # poll_interval: 2  # Override the playlist target duration
  progress_interval: 3  # Seconds between progress message edits

upload:
  enabled: false
  destination_dir: /mnt/nas/Download
  delete_after_upload: false

logging:
  level: INFO  # DEBUG, INFO, WARNING, ERROR
  file: ./logs/recorder.log
  max_size_mb: 10
  backup_count: 5
"""
    with open(path, 'w', encoding='utf-8') as f:
        f.write(example)


if __name__ == '__main__':
    create_example_config()
    print("Created config.example.yaml")
