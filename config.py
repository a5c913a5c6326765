"""
Centralized configuration for the nearby chat client
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Server endpoints
SERVER_CONFIG = {
    "url": os.getenv("NEARBY_SERVER_URL", "http://192.168.1.2:8000"),
    "namespace": "/",
}

# Socket.IO transport settings (reconnection is owned by the transport)
CONNECTION_CONFIG = {
    "transports": ["websocket"],
    "reconnection": os.getenv("NEARBY_RECONNECTION", "true").lower() == "true",
    "reconnection_attempts": int(os.getenv("NEARBY_RECONNECTION_ATTEMPTS", "0")),  # 0 = unlimited
    "reconnection_delay": 1,
    "reconnection_delay_max": 5,
    "wait_timeout": float(os.getenv("NEARBY_CONNECT_TIMEOUT", "10")),
}

# Pool matching limits
MATCHING_CONFIG = {
    "default_display_name": "Anonymous",
    "radius_km": {"min": 1, "max": 50, "step": 1, "default": 5},
    "duration_min": {"min": 5, "max": 60, "step": 5, "default": 10},
}

# Chat session settings
CHAT_CONFIG = {
    "max_message_length": 500,
    "echo_window_seconds": 5.0,  # Own rebroadcasts inside this window are deduplicated
    "self_label": "me",
    "peer_label": "peer",
}

# Recent chats HTTP collaborator
RECENT_CHATS_CONFIG = {
    "path": "/chats",
    "timeout_seconds": 10.0,
}

# Location capability for the console client
LOCATION_CONFIG = {
    "latitude": os.getenv("NEARBY_LATITUDE"),
    "longitude": os.getenv("NEARBY_LONGITUDE"),
    "permission_granted": os.getenv("NEARBY_LOCATION_PERMISSION", "granted").lower() == "granted",
}

# Display settings
DISPLAY_CONFIG = {
    "colors": {
        "peer": "\033[93m",     # Yellow
        "self": "\033[92m",     # Green
        "error": "\033[91m",    # Red
        "info": "\033[94m",     # Blue
        "reset": "\033[0m"      # Reset
    },
    "emojis": {
        "search": "🔍",
        "chat": "💬",
        "online": "🟢",
        "offline": "🔴",
        "error": "❌",
        "success": "✅",
        "wave": "👋"
    }
}

# Logging configuration
LOGGING_CONFIG = {
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "log_dir": os.getenv("LOG_DIR", "./logs"),
    "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "true").lower() == "true",
    "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
    "structured_logging": os.getenv("ENVIRONMENT", "development").lower() == "production",
    "max_log_size_mb": int(os.getenv("MAX_LOG_SIZE_MB", "10")),
    "backup_count": int(os.getenv("LOG_BACKUP_COUNT", "5")),
}
