"""
Configuration validation module.

Validates settings on startup so misconfigurations fail fast with clear
messages instead of surfacing mid-session.
"""

from typing import List, Tuple
from urllib.parse import urlparse

from core.logging_config import get_logger


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


class ConfigValidator:
    """Validates application configuration"""

    VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """
        Validate all configuration settings.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors.clear()
        self.warnings.clear()

        self._validate_server_config()
        self._validate_connection_config()
        self._validate_matching_config()
        self._validate_chat_config()
        self._validate_location_config()
        self._validate_logging_config()

        is_valid = len(self.errors) == 0
        return is_valid, self.errors.copy(), self.warnings.copy()

    def _validate_server_config(self):
        from config import SERVER_CONFIG

        url = SERVER_CONFIG.get("url", "")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            self.errors.append(f"Server URL must be an http(s) URL: {url!r}")
        elif parsed.scheme == "http" and parsed.hostname not in ("localhost", "127.0.0.1"):
            self.warnings.append(f"Server URL {url} is not using HTTPS")

        namespace = SERVER_CONFIG.get("namespace", "/")
        if not namespace.startswith("/"):
            self.errors.append(f"Socket.IO namespace must start with '/': {namespace!r}")

    def _validate_connection_config(self):
        from config import CONNECTION_CONFIG

        transports = CONNECTION_CONFIG.get("transports", [])
        unknown = [t for t in transports if t not in ("websocket", "polling")]
        if not transports or unknown:
            self.errors.append(f"Invalid transports {transports}. Allowed: websocket, polling")

        timeout = CONNECTION_CONFIG.get("wait_timeout", 10)
        if timeout < 1 or timeout > 60:
            self.warnings.append(f"Connection timeout {timeout}s may be too {'low' if timeout < 1 else 'high'}. Recommended: 5-30s")

        if CONNECTION_CONFIG.get("reconnection_attempts", 0) < 0:
            self.errors.append("reconnection_attempts cannot be negative")

    def _validate_matching_config(self):
        from config import MATCHING_CONFIG

        for key in ("radius_km", "duration_min"):
            limits = MATCHING_CONFIG.get(key, {})
            try:
                low, high, step, default = limits["min"], limits["max"], limits["step"], limits["default"]
            except KeyError as e:
                self.errors.append(f"MATCHING_CONFIG[{key!r}] missing {e}")
                continue
            if not 0 < low <= high:
                self.errors.append(f"MATCHING_CONFIG[{key!r}] has invalid range {low}..{high}")
            if step <= 0:
                self.errors.append(f"MATCHING_CONFIG[{key!r}] step must be positive")
            elif not low <= default <= high or (default - low) % step:
                self.errors.append(f"MATCHING_CONFIG[{key!r}] default {default} is not a valid value")

    def _validate_chat_config(self):
        from config import CHAT_CONFIG

        if CHAT_CONFIG.get("max_message_length", 0) <= 0:
            self.errors.append("max_message_length must be positive")
        if CHAT_CONFIG.get("echo_window_seconds", 0) < 0:
            self.errors.append("echo_window_seconds cannot be negative")
        if CHAT_CONFIG.get("self_label") == CHAT_CONFIG.get("peer_label"):
            self.errors.append("self_label and peer_label must differ")

    def _validate_location_config(self):
        from config import LOCATION_CONFIG

        latitude = LOCATION_CONFIG.get("latitude")
        longitude = LOCATION_CONFIG.get("longitude")
        if latitude is None or longitude is None:
            self.warnings.append("NEARBY_LATITUDE/NEARBY_LONGITUDE not set: searches will fail to get a location fix")
            return
        try:
            lat, lon = float(latitude), float(longitude)
        except ValueError:
            self.errors.append(f"Location coordinates are not numbers: {latitude!r}, {longitude!r}")
            return
        if not -90 <= lat <= 90 or not -180 <= lon <= 180:
            self.errors.append(f"Location coordinates out of range: {lat}, {lon}")

    def _validate_logging_config(self):
        from config import LOGGING_CONFIG

        log_level = LOGGING_CONFIG.get("log_level", "INFO")
        if log_level.upper() not in self.VALID_LOG_LEVELS:
            self.errors.append(f"Invalid log level '{log_level}'. Must be one of: {', '.join(self.VALID_LOG_LEVELS)}")

        max_size = LOGGING_CONFIG.get("max_log_size_mb", 10)
        if max_size < 1 or max_size > 1000:
            self.warnings.append(f"Log file size {max_size}MB may be {'too small' if max_size < 5 else 'too large'}. Recommended: 5-100MB")

        backup_count = LOGGING_CONFIG.get("backup_count", 5)
        if backup_count < 1 or backup_count > 50:
            self.warnings.append(f"Log backup count {backup_count} may be {'too low' if backup_count < 3 else 'too high'}. Recommended: 3-20")


def validate_startup_config() -> List[str]:
    """
    Validate configuration on startup.

    Returns:
        Warnings found during validation

    Raises:
        ConfigValidationError: If critical configuration errors are found
    """
    validator = ConfigValidator()
    is_valid, errors, warnings = validator.validate_all()

    logger = get_logger(__name__)
    for warning in warnings:
        logger.warning(f"Configuration warning: {warning}")

    if not is_valid:
        raise ConfigValidationError("Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors))

    logger.debug("Configuration validation passed")
    return warnings
