"""Application settings loader from YAML configuration."""
import os
import yaml
from pathlib import Path
from typing import Optional
from dataclasses import dataclass

from ..utils.exceptions import ConfigError

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"


@dataclass
class AppSettings:
    """Application-wide settings loaded from config.yaml."""
    
    # App info
    app_name: str
    app_version: str
    
    # Logging
    log_level: str
    log_dir: Optional[str]
    log_max_file_size_mb: int
    log_backup_count: int
    
    # Memory files
    fingerprint_file: str
    sku_file: str
    
    # Input reports
    report_skip_rows: int
    report_delimiter: str
    
    # Output files
    output_dir: str
    output_delimiter: str
    output_prefix: str
    new_sku_prefix: str
    placeholder_sku: str
    
    # New SKU hints
    sku_fuzzy_threshold: int
    
    @property
    def fingerprint_path(self) -> Path:
        return Path(self.fingerprint_file)
    
    @property
    def sku_path(self) -> Path:
        return Path(self.sku_file)
    
    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "AppSettings":
        """
        Load settings from YAML file.
        
        Args:
            config_path: Explicit file; falls back to $DEDUPFLOW_CONFIG, then
                the config.yaml shipped with the package
            
        Raises:
            ConfigError: If the file is missing, unparseable or incomplete
        """
        if config_path is None:
            env_path = os.getenv("DEDUPFLOW_CONFIG")
            config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
        config_path = Path(config_path)
        
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")
        
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        
        if not isinstance(config, dict):
            raise ConfigError(f"Configuration file is empty or not a mapping: {config_path}")
        
        try:
            settings = cls(
                app_name=config["app"]["name"],
                app_version=str(config["app"]["version"]),
                log_level=config["logging"]["level"],
                log_dir=config["logging"].get("dir"),
                log_max_file_size_mb=int(config["logging"]["max_file_size_mb"]),
                log_backup_count=int(config["logging"]["backup_count"]),
                fingerprint_file=config["memory"]["fingerprint_file"],
                sku_file=config["memory"]["sku_file"],
                report_skip_rows=int(config["report"]["skip_rows"]),
                report_delimiter=config["report"]["delimiter"],
                output_dir=str(config["output"]["dir"]),
                output_delimiter=config["output"]["delimiter"],
                output_prefix=config["output"]["output_prefix"],
                new_sku_prefix=config["output"]["new_sku_prefix"],
                placeholder_sku=config["output"]["placeholder_sku"],
                sku_fuzzy_threshold=int(config["new_sku"]["fuzzy_match_threshold"])
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Incomplete configuration in {config_path}: {e}") from e
        
        is_valid, message = settings.validate()
        if not is_valid:
            raise ConfigError(f"Invalid configuration in {config_path}: {message}")
        
        return settings
    
    def validate(self) -> tuple[bool, str]:
        """Validate configuration values."""
        if not self.fingerprint_file or not self.sku_file:
            return False, "Both memory file paths are required"
        
        if Path(self.fingerprint_file).resolve() == Path(self.sku_file).resolve():
            return False, "Fingerprint and SKU memory must be separate files"
        
        if self.report_skip_rows < 0:
            return False, "report.skip_rows cannot be negative"
        
        if len(self.report_delimiter) != 1 or len(self.output_delimiter) != 1:
            return False, "Delimiters must be a single character"
        
        if self.sku_fuzzy_threshold < 0:
            return False, "new_sku.fuzzy_match_threshold cannot be negative"
        
        return True, "Configuration is valid"


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings(config_path: Optional[Path] = None) -> AppSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None or config_path is not None:
        _settings = AppSettings.load(config_path)
    return _settings
