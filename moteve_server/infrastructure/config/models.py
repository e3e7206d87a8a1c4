"""
Configuration models and data structures.

This module defines the configuration models used throughout the server,
providing type safety and validation for configuration values.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class UploadConfig:
    """Chunked upload configuration."""
    storage_backend: str = "filesystem"
    storage_directory: str = "data/parts"
    output_directory: str = "data/videos"
    video_extension: str = ".3gp"
    max_part_size: int = 0  # 0 disables the limit
    idle_timeout: float = 3600.0
    reap_interval: float = 60.0
    finalize_enabled: bool = True
    keep_parts: bool = False


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
    log_directory: str = "logs"
    max_file_size: str = "10 MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = True


@dataclass
class SecurityConfig:
    """Security configuration."""
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    trusted_hosts: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class AccountConfig:
    """A user account seeded into the in-memory user directory."""
    email: str
    password: str
    display_name: Optional[str] = None
    enabled: bool = True
    groups: List[str] = field(default_factory=list)


STORAGE_BACKENDS = ("filesystem", "memory")
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    name: str = "Moteve Server"
    version: str = "0.1.0"
    debug: bool = False
    environment: str = "production"

    server: ServerConfig = field(default_factory=ServerConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    accounts: List[AccountConfig] = field(default_factory=list)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_server()
        self._validate_upload()
        self._validate_logging()
        self._validate_accounts()

    def _validate_server(self) -> None:
        if not (1 <= self.server.port <= 65535):
            raise ValueError(
                f"Server port must be between 1 and 65535, got {self.server.port}")

    def _validate_upload(self) -> None:
        upload = self.upload
        if upload.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"Unknown storage backend {upload.storage_backend!r}, "
                f"expected one of {', '.join(STORAGE_BACKENDS)}")

        if upload.max_part_size < 0:
            raise ValueError(
                f"max_part_size must not be negative, got {upload.max_part_size}")

        timeouts = [
            ("idle_timeout", upload.idle_timeout),
            ("reap_interval", upload.reap_interval),
        ]
        for name, value in timeouts:
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

    def _validate_logging(self) -> None:
        if self.logging.level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.logging.level}")

    def _validate_accounts(self) -> None:
        seen = set()
        for account in self.accounts:
            if not account.email:
                raise ValueError("Account email cannot be empty")
            if account.email in seen:
                raise ValueError(f"Duplicate account: {account.email}")
            seen.add(account.email)

    def ensure_directories(self) -> None:
        """Create the directories the server writes into."""
        paths = [self.upload.output_directory]
        if self.upload.storage_backend == "filesystem":
            paths.append(self.upload.storage_directory)
        if self.logging.file_enabled:
            paths.append(self.logging.log_directory)

        for path_str in paths:
            try:
                Path(path_str).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ValueError(f"Cannot create directory {path_str}: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationConfig':
        """Create configuration from dictionary."""
        return cls(
            name=data.get('name', 'Moteve Server'),
            version=data.get('version', '0.1.0'),
            debug=data.get('debug', False),
            environment=data.get('environment', 'production'),
            server=ServerConfig(**data.get('server', {})),
            upload=UploadConfig(**data.get('upload', {})),
            logging=LoggingConfig(**data.get('logging', {})),
            security=SecurityConfig(**data.get('security', {})),
            accounts=[AccountConfig(**a) for a in data.get('accounts', [])],
            config_file_path=data.get('config_file_path'),
        )
