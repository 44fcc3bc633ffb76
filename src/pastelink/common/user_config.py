"""
User Configuration Management

Manages user-editable settings stored in a JSON file.
Settings can be changed with 'pastelink config --set KEY VALUE'.
"""
import json
import logging
from pathlib import Path
from typing import Any, List, Optional
from dataclasses import dataclass, asdict, field

from pastelink import config
from pastelink.common.errors import ErrorCode, UserError, get_error

logger = logging.getLogger(__name__)


def get_config_file() -> Path:
    """Default config file location"""
    return config.get_data_dir() / "config.json"


@dataclass
class LinkConfig:
    """User configuration for a pastelink session"""

    # Transfer
    chunk_size: int = config.CHUNK_SIZE
    buffered_low_threshold: int = config.BUFFERED_AMOUNT_LOW_THRESHOLD
    download_dir: str = str(config.DOWNLOAD_DIR)

    # Connectivity, e.g. ["stun:stun.l.google.com:19302"]
    ice_servers: list = field(default_factory=lambda: list(config.ICE_SERVERS))

    # Display
    progress_step: int = config.PROGRESS_STEP

    def validate(self) -> List[str]:
        """Return a list of problems, empty when the config is usable"""
        errors = []

        if not isinstance(self.chunk_size, int) or not 0 < self.chunk_size <= config.MAX_CHUNK_SIZE:
            errors.append(f"chunk_size must be between 1 and {config.MAX_CHUNK_SIZE}")

        if not isinstance(self.buffered_low_threshold, int) or self.buffered_low_threshold < 0:
            errors.append("buffered_low_threshold must be a non-negative integer")

        if not isinstance(self.download_dir, str) or not self.download_dir:
            errors.append("download_dir must be a path")

        if not isinstance(self.ice_servers, list) or not all(isinstance(s, str) for s in self.ice_servers):
            errors.append("ice_servers must be a list of URLs")

        if not isinstance(self.progress_step, int) or not 1 <= self.progress_step <= 100:
            errors.append("progress_step must be between 1 and 100")

        return errors

    @property
    def download_path(self) -> Path:
        return Path(self.download_dir).expanduser()

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'LinkConfig':
        """Create config from dict, using defaults for missing keys"""
        defaults = cls()
        for key, value in data.items():
            if hasattr(defaults, key):
                setattr(defaults, key, value)
        return defaults


class ConfigManager:
    """Manages loading, saving, and accessing user configuration"""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = Path(config_path) if config_path else get_config_file()
        self._config: Optional[LinkConfig] = None
        self.load_error: Optional[UserError] = None  # set when load() fell back to defaults

    def load(self) -> LinkConfig:
        """Load configuration from file"""
        path = self.config_path
        self.load_error = None

        if path.exists():
            try:
                with open(path, 'r') as f:
                    data = json.load(f)
                loaded = LinkConfig.from_dict(data)
            except (OSError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Failed to load config: {e}, using defaults")
                loaded = LinkConfig()
                self.load_error = get_error(ErrorCode.INVALID_CONFIG)
            else:
                errors = loaded.validate()
                if errors:
                    logger.warning(f"Invalid config values ({'; '.join(errors)}), using defaults")
                    loaded = LinkConfig()
                    self.load_error = get_error(ErrorCode.INVALID_CONFIG)
                else:
                    logger.info(f"Loaded config from {path}")
            self._config = loaded
        else:
            logger.info("No config file found, using defaults")
            self._config = LinkConfig()

        return self._config

    def save(self) -> bool:
        """Save configuration to file"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                json.dump(self.get().to_dict(), f, indent=2)
            logger.info(f"Saved config to {self.config_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to save config: {e}")
            return False

    def get(self) -> LinkConfig:
        """Get current configuration"""
        if self._config is None:
            self.load()
        return self._config

    def set(self, key: str, value: Any) -> bool:
        """Set a configuration value; rejects unknown keys and invalid values"""
        current = self.get()
        if not hasattr(current, key):
            logger.error(f"Unknown config key: {key}")
            return False

        candidate = LinkConfig.from_dict({**current.to_dict(), key: value})
        errors = candidate.validate()
        if errors:
            logger.error(f"Invalid value for {key}: {'; '.join(errors)}")
            return False

        self._config = candidate
        return self.save()

    def reset(self) -> LinkConfig:
        """Reset to default configuration"""
        self._config = LinkConfig()
        self.load_error = None
        self.save()
        return self._config


_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the configuration manager for the default config file"""
    global _manager
    if _manager is None:
        _manager = ConfigManager()
    return _manager


def get_config() -> LinkConfig:
    """Get the current user configuration"""
    return get_config_manager().get()


def print_config(manager: Optional[ConfigManager] = None):
    """Print configuration in a readable format"""
    manager = manager or get_config_manager()
    cfg = manager.get()

    print("\n" + "=" * 50)
    print("  pastelink - Configuration")
    print("=" * 50)

    print("\n  Transfer:")
    print(f"    Chunk Size:        {cfg.chunk_size} bytes")
    print(f"    Buffer Threshold:  {cfg.buffered_low_threshold} bytes")
    print(f"    Download Dir:      {cfg.download_dir}")

    print("\n  Connectivity:")
    if cfg.ice_servers:
        for url in cfg.ice_servers:
            print(f"    ICE Server:        {url}")
    else:
        print("    ICE Servers:       none (local network / direct only)")

    print("\n  Display:")
    print(f"    Progress Step:     {cfg.progress_step}%")

    print(f"\n  Config File: {manager.config_path}")
    if manager.load_error:
        print(f"\n  {manager.load_error}")
    print("=" * 50 + "\n")
