# config_stip.py
"""
Configuration constants
"""
import logging
# ==============================================================
# Stip settings
# ==============================================================
# Software version
VERSION = "0.4.0"

# ==============================================================
# One-time password defaults
# ==============================================================
DEFAULT_DIGITS = 6                # Used when an otpauth URL omits "digits"
DEFAULT_PERIOD = 30               # Seconds, used when "period" is omitted
MAX_DIGITS = 10                   # From here on the full 31-bit value is kept

# SHA1 block size in bytes. DO NOT CHANGE
SHA1_BLOCK_SIZE = 64

# ==============================================================
# Containers
# ==============================================================
# Files with these suffixes are opened as KeePass databases
KEEPASS_SUFFIXES = (".kdbx",)

# Number of times the user may retry a wrong password
MAX_PASSWORD_TRIES = 3

# Number of times the user may retry an invalid menu selection
MAX_PROMPT_TRIES = 3

# ==============================================================
# Clipboard security
# ==============================================================
CLIPBOARD_TIMEOUT = 30               # Seconds before auto-clear
WIPE_CLIPBOARD = True                # Enable/disable clipboard flooding
CLIPBOARD_LENGTH = 80                # Number of entries to flood

# ==============================================================
# Logging
# ==============================================================
LOG_FILE = "error.log"
LOG_LEVEL = logging.WARNING

# ==============================================================
# Display & formatting
# ==============================================================
UTF8 = "utf-8"
DT_FORMAT = "MMM D, YYYY hh:mm:ss A"
PROGRESS_WIDTH = 30               # Characters in the countdown bar

# length of visible name when listing entries
NAME_LEN = 28

# separator
SEP_LG = "=" * 50
SEP_SM = "-" * 50

# ==============================================================
# Optional: local overrides
# Local configuration file overrides standard config values

# ==============================================================
try:
    from config.config_local import *
except ImportError:
    pass  # No local config, use defaults above
