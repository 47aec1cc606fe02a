"""
Configuration management using Pydantic Settings.

Architecture Decision: Why pydantic-settings?
- Type-safe configuration with validation
- Supports multiple sources (YAML, env vars, defaults)
- Easy to test with different configurations
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with multiple sources:
    1. Default values (hardcoded)
    2. YAML config file (only fills values not given explicitly)
    3. Environment variables / constructor arguments (highest priority)
    """
    model_config = SettingsConfigDict(
        env_prefix='CYBERTASK_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        validate_assignment=True
    )

    # Application paths
    app_name: str = "CyberTask"
    config_dir: Optional[Path] = None
    data_dir: Optional[Path] = None

    # Database
    database_url: Optional[str] = None
    sql_echo: bool = False

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._init_config_dir()
        self._load_yaml_config()
        self._init_data_dir()

    def _init_config_dir(self):
        """Initialize the config directory based on OS"""
        if self.config_dir is None:
            if os.name == 'nt':  # Windows
                base = Path(os.getenv('APPDATA'))
            else:  # Linux/Mac
                base = Path.home() / '.config'
            self.config_dir = base / self.app_name.lower()
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def _init_data_dir(self):
        """Initialize the data directory (may come from the YAML file)"""
        if self.data_dir is None:
            if os.name == 'nt':  # Windows
                base = Path(os.getenv('APPDATA'))
            else:  # Linux/Mac
                base = Path.home() / '.local' / 'share'
            self.data_dir = base / self.app_name.lower()
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_yaml_config(self):
        """Load configuration from YAML file"""
        # First check in workspace config folder
        config_file = Path("config/settings.yaml")
        if not config_file.exists():
            # Then check in user's config directory
            config_file = self.config_dir / "settings.yaml"

        if not config_file.exists():
            return

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        # Explicit arguments and env vars win over the file
        for key, value in config_data.items():
            if key in type(self).model_fields and key not in self.model_fields_set:
                setattr(self, key, value)

    def get_db_url(self) -> str:
        """Get database URL, creating default if not set"""
        if self.database_url:
            return self.database_url

        db_path = self.data_dir / 'cybertask.db'
        return f"sqlite+aiosqlite:///{db_path}"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
