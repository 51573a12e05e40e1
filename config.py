"""
Configuration settings for the place query engine.
"""
import os
from typing import Dict, Any
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Session lifecycle configuration (durations in milliseconds)
SESSION_CONFIG = {
    "timeout_ms": int(os.environ.get("SESSION_TIMEOUT", "1800000")),  # 30 minutes
    "cleanup_interval_ms": int(os.environ.get("SESSION_CLEANUP_INTERVAL", "300000")),  # 5 minutes
}

# Conversation context (previous locations) shares the session timeout unless overridden
SESSION_CONFIG["context_timeout_ms"] = int(
    os.environ.get("CONTEXT_TIMEOUT", str(SESSION_CONFIG["timeout_ms"]))
)

# Query parser configuration
PARSER_CONFIG = {
    "confidence_threshold": float(os.environ.get("CONFIDENCE_THRESHOLD", "0.6")),
    "max_query_length": int(os.environ.get("MAX_QUERY_LENGTH", "500")),
}

# Retry configuration for transient parse failures (delays in seconds)
RETRY_CONFIG = {
    "max_retries": int(os.environ.get("PARSE_MAX_RETRIES", "3")),
    "base_delay": float(os.environ.get("PARSE_RETRY_BASE_DELAY", "1.0")),
    "max_delay": float(os.environ.get("PARSE_RETRY_MAX_DELAY", "5.0")),
}

# Application configuration
APP_CONFIG = {
    "debug": os.environ.get("DEBUG", "False").lower() == "true",
    "log_level": os.environ.get("LOG_LEVEL", "INFO"),
}

# Feature flags
FEATURES = {
    "use_conversation_context": os.environ.get("USE_CONVERSATION", "True").lower() == "true",
    "log_telemetry": os.environ.get("LOG_TELEMETRY", "True").lower() == "true",
}

def get_config() -> Dict[str, Any]:
    """Return the complete configuration dictionary."""
    return {
        "session": SESSION_CONFIG,
        "parser": PARSER_CONFIG,
        "retry": RETRY_CONFIG,
        "app": APP_CONFIG,
        "features": FEATURES
    }
