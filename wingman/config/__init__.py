"""Simple YAML configuration loader for Wingman."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

# Keys holding filesystem paths that are resolved relative to the config file
PATH_KEYS = (
    "storage.temp_directory",
    "logging.file_path",
    "whisper.model_path",
)

# Executables are resolved only when given with a directory part; bare
# names are looked up on PATH
BINARY_KEYS = (
    "whisper.binary_path",
    "ffmpeg.binary_path",
)


class WingmanConfig:
    """Wingman configuration loader."""
    
    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.
        
        Args:
            config_path: Path to YAML config file. If None, looks for wingman.yaml
                        in the current directory.
        """
        self.config_file = Path(config_path or "wingman.yaml")
        
        if not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")
        
        logger.info(f"Loading configuration from: {self.config_file}")
        self.config = self._load_config()
    
    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        
        if not config:
            raise ValueError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        
        self._resolve_paths(config)
        
        logger.info("Configuration loaded successfully")
        return config
    
    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent
        
        for key_path in PATH_KEYS + BINARY_KEYS:
            section, key = key_path.split('.')
            if not isinstance(config.get(section), dict) or key not in config[section]:
                continue
            value = str(config[section][key])
            if key_path in BINARY_KEYS and not os.path.dirname(value):
                continue
            if not os.path.isabs(value):
                config[section][key] = str(config_dir / value)
    
    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'ollama.model').
        
        Args:
            key_path: Dot-separated key path (e.g., 'whisper.model_path')
            default: Default value if key not found
            
        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config
        
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        
        return value
    
    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.
        
        Args:
            key_path: Dot-separated path to config value (e.g., 'vad.silence_duration_ms')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config
        
        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]
        
        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")
    
    def get_temp_directory(self) -> str:
        """Get the scratch directory for pipeline intermediates."""
        temp_dir = self.get('storage.temp_directory', 'temp')
        return str(Path(temp_dir).absolute())
    
    def get_whisper_paths(self) -> Dict[str, str]:
        """Get whisper.cpp binary and model paths - CRASHES if the model is not configured."""
        model_path = self.get('whisper.model_path')
        if not model_path:
            raise ValueError("whisper.model_path not configured in wingman.yaml")
        
        return {
            "binary_path": self.get('whisper.binary_path', 'whisper-cli'),
            "model_path": str(model_path),
        }
