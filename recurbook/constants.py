"""
Global constants for recurbook.

This module centralizes file names, environment variables, iteration bounds
and default values used across the engine, the stores and the CLI.
"""

from decimal import Decimal

# ============================================================================
# File Paths and Directories
# ============================================================================

CONFIG_FILENAME = "_config.yaml"
FAMILY_FILE_PREFIX = "family-"
FAMILY_FILE_PATTERN = "family-*.yaml"
HISTORY_DIRNAME = "history"
DEFAULT_DATA_DIR = "recurring"
LOCK_FILENAME = ".recurbook.lock"  # Held while a store reads or writes the directory

# Environment variable for data directory discovery
ENV_DATA_DIR = "RECURBOOK_DIR"

# ============================================================================
# Default Configuration Values
# ============================================================================

DEFAULT_TIME = "09:00"
DEFAULT_CURRENCY = "USD"
ZERO_PRICE = Decimal("0")

# ============================================================================
# Validation Constraints
# ============================================================================

MIN_DAY_OF_MONTH = 1
MAX_DAY_OF_MONTH = 31
MIN_DAY_OF_WEEK = 0  # Sunday
MAX_DAY_OF_WEEK = 6  # Saturday
WEEK_OF_MONTH_LAST = -1
VALID_WEEKS_OF_MONTH = (1, 2, 3, 4, WEEK_OF_MONTH_LAST)
MIN_INTERVAL = 1
TIME_PATTERN = r"^([01][0-9]|2[0-3]):[0-5][0-9]$"

# ============================================================================
# Date Arithmetic
# ============================================================================

DAYS_PER_WEEK = 7
MONTHS_PER_YEAR = 12
MIN_DAYS_PER_MONTH = 28  # Shortest month, used as the period of month rules

# A day-of-month pattern may skip months lacking that day; one year always
# contains every day from 1 to 31 at least once.
MAX_MONTHS_TO_NEXT_DAY_OF_MONTH = 12

# ============================================================================
# Projection Iteration Bounds
# ============================================================================

MIN_PROJECTION_STEPS = 24  # Floor for any walk toward a target month
PROJECTION_STEP_BUFFER = 5  # Extra steps on top of distance / period
MAX_OCCURRENCES_PER_MONTH = 10  # Enumeration cap inside one month

# ============================================================================
# Display/Formatting Constants
# ============================================================================

MAX_TABLE_COLUMN_WIDTH = 30
DATE_FORMAT = "%Y-%m-%d"
