"""
Runtime configuration loaded from environment variables.

Values can be set in a .env file at the project root or in the process
environment. Every setting has a default that works for local development.
"""
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


# Storage
DATABASE_URL = os.getenv("VVANDER_DATABASE_URL", "sqlite:///vvander.db")

# Redis (diagnostic event stream)
REDIS_HOST = os.getenv("VVANDER_REDIS_HOST", "127.0.0.1")
REDIS_PORT = _env_int("VVANDER_REDIS_PORT", 6379)
REDIS_TIMEOUT_SECONDS = _env_float("VVANDER_REDIS_TIMEOUT_SECONDS", 0.5)

LOG_LEVEL = os.getenv("VVANDER_LOG_LEVEL", "INFO")

# Fog rendering
FOG_HEX_CAP = _env_int("VVANDER_FOG_HEX_CAP", 10000)  # Max hexes handed to the fog builder
FOG_OVERSCAN = _env_float("VVANDER_FOG_OVERSCAN", 1.5)
MAX_FOG_SPAN = _env_float("VVANDER_MAX_FOG_SPAN", 20.0)  # Degrees of latitude
SLOW_PASS_BUDGET_MS = _env_float("VVANDER_SLOW_PASS_BUDGET_MS", 20.0)

# Viewport scheduling
THROTTLE_MS = _env_float("VVANDER_THROTTLE_MS", 100.0)
PREFETCH_DELAY_MS = _env_float("VVANDER_PREFETCH_DELAY_MS", 50.0)
PREFETCH_EXPANSION = _env_float("VVANDER_PREFETCH_EXPANSION", 3.0)
PAN_NOISE_FRACTION = _env_float("VVANDER_PAN_NOISE_FRACTION", 0.1)
