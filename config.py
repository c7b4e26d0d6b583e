"""
Centralized configuration for the lock feed control panel
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Platform account and feed
PLATFORM_HOST = os.getenv("AIO_HOST", "io.adafruit.com")

AIO_CONFIG = {
    "username": os.getenv("AIO_USERNAME", ""),
    "key": os.getenv("AIO_KEY", ""),
    "feed_key": os.getenv("AIO_FEED_KEY", "lock"),
    "platform_host": PLATFORM_HOST,
}

# Pub/sub broker (MQTT over secure websockets)
MQTT_CONFIG = {
    "host": os.getenv("AIO_MQTT_HOST", PLATFORM_HOST),
    "port": int(os.getenv("AIO_MQTT_PORT", "443")),
    "path": "/mqtt",
    "transport": "websockets",  # "websockets" or "tcp"
    "use_tls": True,
    "keepalive": 60,  # seconds
    "qos": 0,
}

# Request/response API
REST_CONFIG = {
    "api_url": os.getenv("AIO_API_URL", f"https://{PLATFORM_HOST}/api/v2"),
    "key_header": "X-AIO-Key",
    "timeout": float(os.getenv("AIO_API_TIMEOUT", "10")),  # seconds per request
}

# Dashboard display defaults
DASHBOARD_CONFIG = {
    "initial_feed_value": "—",
    "initial_status_message": "Welcome!",
    "client_id_prefix": "web_",
    # Preset commands offered by the panel
    "presets": {
        "lock": "LOCK",
        "unlock": "UNLOCK",
    },
}

# Presentation server (WebSocket)
SERVER_CONFIG = {
    "enabled": os.getenv("DASHBOARD_SERVER_ENABLED", "true").lower() == "true",
    "host": os.getenv("DASHBOARD_HOST", "localhost"),
    "port": int(os.getenv("DASHBOARD_PORT", "8765")),
    "max_value_length": 1024,
    "rate_limit": {
        "requests_per_minute": 60,
        "burst_size": 10,
    },
}

# Event delivery
EVENT_CONFIG = {
    "max_history": 200,
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
