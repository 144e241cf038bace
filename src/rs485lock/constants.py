"""Constants for rs485lock."""

from pathlib import Path

# Queue file location: <lock dir>/<prefix><device basename>
DEFAULT_LOCK_DIR = Path("/var/lock")
DEFAULT_PREFIX = "LCK.."
DEFAULT_CONFIG_PATH = Path("/etc/rs485lock.toml")

# Acquire loop tuning
MAX_WAIT_SECONDS = 30
STALE_CONFIRMATIONS = 2  # Consecutive stale observations before clearing
MISSING_RECORD_RETRIES = 2  # Unreadable heads tolerated before re-enqueueing
POLL_INTERVAL_MS = 25
BACKOFF_SPREAD = 4  # Random multiplier upper bound for sleeps

# Exit statuses
EXIT_TIMEOUT = 1
EXIT_FATAL = 2
