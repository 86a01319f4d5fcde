"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
import json

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError

MODES = ('send', 'receive')
ENCODINGS = ('tar.gz', 'zip')


@dataclass
class Config:
    """
    Dropshare configuration.
    
    Configuration priority (highest to lowest):
    1. Command-line options
    2. Environment variables (DROPSHARE_*)
    3. Config file (JSON)
    4. Default values
    """
    # Network
    host: str = '127.0.0.1'
    port: int = 7878
    
    # Transfer
    mode: str = 'send'
    encoding: str = 'tar.gz'
    chunk_size: int = 64 * 1024  # 64KB
    
    # Storage
    work_dir: Path = field(default_factory=lambda: Path('.'))
    upload_dir: Path = field(default_factory=lambda: Path('.'))
    
    # Logging
    log_level: str = 'INFO'
    
    @property
    def receive(self) -> bool:
        return self.mode == 'receive'
    
    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))
        
        config = cls()
        
        # Network
        config.host = os.getenv('DROPSHARE_HOST', config.host)
        config.port = int(os.getenv('DROPSHARE_PORT', config.port))
        
        # Transfer
        config.mode = os.getenv('DROPSHARE_MODE', config.mode).lower()
        config.encoding = os.getenv('DROPSHARE_ENCODING', config.encoding).lower()
        config.chunk_size = int(os.getenv('DROPSHARE_CHUNK_SIZE', config.chunk_size))
        
        # Storage
        work_dir = os.getenv('DROPSHARE_WORK_DIR')
        if work_dir:
            config.work_dir = Path(work_dir)
        upload_dir = os.getenv('DROPSHARE_UPLOAD_DIR')
        if upload_dir:
            config.upload_dir = Path(upload_dir)
        
        # Logging
        config.log_level = os.getenv('DROPSHARE_LOG_LEVEL', config.log_level)
        
        return config
    
    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()
        
        with open(path) as f:
            data = json.load(f)
        
        config = cls()
        
        config.host = data.get('host', config.host)
        config.port = data.get('port', config.port)
        config.mode = data.get('mode', config.mode)
        config.encoding = data.get('encoding', config.encoding)
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        
        if 'work_dir' in data:
            config.work_dir = Path(data['work_dir'])
        if 'upload_dir' in data:
            config.upload_dir = Path(data['upload_dir'])
        
        config.log_level = data.get('log_level', config.log_level)
        
        return config
    
    def validate(self) -> 'Config':
        """Reject settings the transfer engine cannot run with."""
        if self.mode not in MODES:
            raise ConfigurationError(f"Unknown mode {self.mode!r} (expected one of {MODES})")
        if self.encoding not in ENCODINGS:
            raise ConfigurationError(
                f"Unknown encoding {self.encoding!r} (expected one of {ENCODINGS})"
            )
        if not 0 <= self.port <= 65535:
            raise ConfigurationError(f"Port out of range: {self.port}")
        if self.chunk_size <= 0:
            raise ConfigurationError(f"Chunk size must be positive: {self.chunk_size}")
        return self
    
    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'mode': self.mode,
            'encoding': self.encoding,
            'chunk_size': self.chunk_size,
            'work_dir': str(self.work_dir),
            'upload_dir': str(self.upload_dir),
            'log_level': self.log_level,
        }
    
    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.
    
    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()
    
    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)
    
    # Override with environment variables
    env_config = Config.from_env()
    
    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in ['host', 'port', 'mode', 'encoding', 'chunk_size',
                'work_dir', 'upload_dir', 'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)
    
    return config
