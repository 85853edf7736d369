"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


DEFAULT_PROBE_TIMEOUT = 15
DEFAULT_MAX_WORKERS = 8


def _require_http_url(url: str, what: str) -> None:
    if not url:
        raise ConfigError(f"{what} cannot be empty")
    if not url.startswith(("http://", "https://")):
        raise ConfigError(f"{what} must start with http:// or https://, got '{url}'")


@dataclass(frozen=True)
class MonitorConfig:
    """Configuration for the sweep loop and the probes it runs."""

    interval: float = 60  # seconds between sweeps
    timeout: float = DEFAULT_PROBE_TIMEOUT  # per-probe timeout in seconds
    max_workers: int = DEFAULT_MAX_WORKERS  # probes run in parallel within a sweep
    user_agent: str = "sitewatch/0.1"

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ConfigError(f"Monitor interval must be positive (got {self.interval})")
        if self.timeout <= 0:
            raise ConfigError(f"Probe timeout must be positive (got {self.timeout})")
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1 (got {self.max_workers})")
        if not self.user_agent:
            raise ConfigError("User-Agent cannot be empty")


@dataclass(frozen=True)
class SmtpConfig:
    """SMTP settings for email failure notifications."""

    host: str
    from_addr: str
    to_addrs: list[str]
    port: int = 587
    username: str | None = None
    password: str | None = None
    subject: str = "[sitewatch]"  # prefix; the full subject is "<prefix> <url> is down!"
    use_tls: bool = True
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.host:
            raise ConfigError("SMTP host cannot be empty")
        if not (1 <= self.port <= 65535):
            raise ConfigError(f"SMTP port must be between 1 and 65535, got {self.port}")
        if not self.from_addr:
            raise ConfigError("SMTP from_addr cannot be empty")
        if not self.to_addrs:
            raise ConfigError("SMTP to_addrs must contain at least one recipient")


@dataclass(frozen=True)
class WebhookConfig:
    """Configuration for a single webhook failure notification."""

    url: str
    enabled: bool = True
    timeout: int = 10

    def __post_init__(self) -> None:
        _require_http_url(self.url, "Webhook URL")
        if self.timeout < 1:
            raise ConfigError(f"Webhook timeout must be at least 1 second, got {self.timeout}")


@dataclass(frozen=True)
class NotificationsConfig:
    """Which sinks receive failure reports."""

    smtp: SmtpConfig | None = None
    webhooks: list[WebhookConfig] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.webhooks, list):
            raise ConfigError("Webhooks must be a list")


@dataclass(frozen=True)
class ApiConfig:
    """Configuration for the JSON status API."""

    enabled: bool = False
    port: int = 8080

    def __post_init__(self) -> None:
        if self.port < 1 or self.port > 65535:
            raise ConfigError(f"API port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    urls: list[str] = field(default_factory=list)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    def __post_init__(self) -> None:
        for url in self.urls:
            _require_http_url(url, "Monitored URL")
        duplicates = {url for url in self.urls if self.urls.count(url) > 1}
        if duplicates:
            raise ConfigError(f"Duplicate URLs found: {duplicates}")


def _parse_urls(data: object) -> list[str]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError("'urls' must be a list")

    urls: list[str] = []
    for index, entry in enumerate(data):
        # Accept both plain strings and {url: ...} mappings
        if isinstance(entry, dict):
            url = entry.get("url")
            if url is None:
                raise ConfigError(f"URL entry {index} is missing 'url' field")
        else:
            url = entry
        if not isinstance(url, str):
            raise ConfigError(f"URL entry {index} must be a string")
        urls.append(url)
    return urls


def _parse_monitor_config(data: dict | None) -> MonitorConfig:
    """Parse monitor configuration section."""
    if data is None:
        return MonitorConfig()
    if not isinstance(data, dict):
        raise ConfigError("'monitor' section must be a dictionary")

    try:
        return MonitorConfig(
            interval=float(data.get("interval", 60)),
            timeout=float(data.get("timeout", DEFAULT_PROBE_TIMEOUT)),
            max_workers=int(data.get("max_workers", DEFAULT_MAX_WORKERS)),
            user_agent=str(data.get("user_agent", "sitewatch/0.1")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in 'monitor' section: {e}")


def _parse_smtp_config(data: dict | None) -> SmtpConfig | None:
    """Parse the notifications.smtp section."""
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ConfigError("'notifications.smtp' section must be a dictionary")

    host = data.get("host")
    from_addr = data.get("from_addr")
    if host is None:
        raise ConfigError("SMTP configuration is missing 'host' field")
    if from_addr is None:
        raise ConfigError("SMTP configuration is missing 'from_addr' field")

    to_addrs = data.get("to_addrs", [])
    if isinstance(to_addrs, str):
        to_addrs = [to_addrs]
    if not isinstance(to_addrs, list):
        raise ConfigError("'notifications.smtp.to_addrs' must be a list")

    username = data.get("username")
    password = data.get("password")

    try:
        port = int(data.get("port", 587))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in 'notifications.smtp' section: {e}")

    return SmtpConfig(
        host=str(host),
        from_addr=str(from_addr),
        to_addrs=[str(addr) for addr in to_addrs],
        port=port,
        username=str(username) if username is not None else None,
        password=str(password) if password is not None else None,
        subject=str(data.get("subject", "[sitewatch]")),
        use_tls=bool(data.get("use_tls", True)),
        enabled=bool(data.get("enabled", True)),
    )


def _parse_webhook_config(data: dict, index: int) -> WebhookConfig:
    """Parse a single webhook configuration entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"Webhook entry {index} must be a dictionary")

    url = data.get("url")
    if url is None:
        raise ConfigError(f"Webhook entry {index} is missing 'url' field")

    try:
        timeout = int(data.get("timeout", 10))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in webhook entry {index}: {e}")

    return WebhookConfig(
        url=str(url),
        enabled=bool(data.get("enabled", True)),
        timeout=timeout,
    )


def _parse_notifications_config(data: dict | None) -> NotificationsConfig:
    """Parse notifications configuration section."""
    if data is None:
        return NotificationsConfig()
    if not isinstance(data, dict):
        raise ConfigError("'notifications' section must be a dictionary")

    webhooks_data = data.get("webhooks", [])
    if not isinstance(webhooks_data, list):
        raise ConfigError("'notifications.webhooks' must be a list")

    return NotificationsConfig(
        smtp=_parse_smtp_config(data.get("smtp")),
        webhooks=[_parse_webhook_config(entry, i) for i, entry in enumerate(webhooks_data)],
    )


def _parse_api_config(data: dict | None) -> ApiConfig:
    """Parse API configuration section."""
    if data is None:
        return ApiConfig()
    if not isinstance(data, dict):
        raise ConfigError("'api' section must be a dictionary")

    try:
        port = int(data.get("port", 8080))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value in 'api' section: {e}")

    return ApiConfig(
        enabled=bool(data.get("enabled", False)),
        port=port,
    )


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - SITEWATCH_MONITOR_INTERVAL: Override monitor.interval
    - SITEWATCH_PROBE_TIMEOUT: Override monitor.timeout
    - SITEWATCH_API_PORT: Override api.port
    - SITEWATCH_API_ENABLED: Override api.enabled (true/false)
    - SITEWATCH_SMTP_PASSWORD: Override notifications.smtp.password (when smtp is configured)
    """
    if config_data.get("monitor") is None:
        config_data["monitor"] = {}
    if config_data.get("api") is None:
        config_data["api"] = {}

    # Malformed sections are reported by the section parsers
    monitor = config_data["monitor"] if isinstance(config_data["monitor"], dict) else {}
    api = config_data["api"] if isinstance(config_data["api"], dict) else {}

    monitor_interval = os.environ.get("SITEWATCH_MONITOR_INTERVAL")
    if monitor_interval is not None:
        monitor["interval"] = float(monitor_interval)

    probe_timeout = os.environ.get("SITEWATCH_PROBE_TIMEOUT")
    if probe_timeout is not None:
        monitor["timeout"] = float(probe_timeout)

    api_port = os.environ.get("SITEWATCH_API_PORT")
    if api_port is not None:
        api["port"] = int(api_port)

    api_enabled = os.environ.get("SITEWATCH_API_ENABLED")
    if api_enabled is not None:
        api["enabled"] = api_enabled.lower() in ("true", "1", "yes")

    smtp_password = os.environ.get("SITEWATCH_SMTP_PASSWORD")
    notifications = config_data.get("notifications")
    if smtp_password is not None and isinstance(notifications, dict) and isinstance(notifications.get("smtp"), dict):
        notifications["smtp"]["password"] = smtp_password

    return config_data


def load_config(config_path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    try:
        data = _apply_env_overrides(data)
    except ValueError as e:
        raise ConfigError(f"Invalid environment override: {e}")

    return Config(
        urls=_parse_urls(data.get("urls")),
        monitor=_parse_monitor_config(data.get("monitor")),
        notifications=_parse_notifications_config(data.get("notifications")),
        api=_parse_api_config(data.get("api")),
    )
