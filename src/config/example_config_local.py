# Local configuration file overrides standard config values. Never commit this file!
# Used for changing user defaults
import logging

CLIPBOARD_TIMEOUT = 15
WIPE_CLIPBOARD = False
MAX_PASSWORD_TRIES = 5
LOG_LEVEL = logging.INFO
LOG_FILE = "stip.log"

# Rename this file to config_local.py to enable it
