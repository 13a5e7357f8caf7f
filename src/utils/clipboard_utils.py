import logging
import secrets
import string
import threading
import time

import pendulum
import pyperclip

from config.config_stip import CLIPBOARD_LENGTH, CLIPBOARD_TIMEOUT, WIPE_CLIPBOARD

logger = logging.getLogger(__name__)


def copy_to_clipboard(text: str, timeout: int = CLIPBOARD_TIMEOUT,
                      prompt: bool = False) -> bool:
    """
    Copy a one-time code to the system clipboard with optional auto-clear.

    If a timeout is specified, a background daemon thread clears the
    clipboard after the delay unless something else was copied since.

    Args:
        text: Code to copy.
        timeout: Number of seconds before the clipboard is cleared.
            A value of 0 or less disables auto-clear.
        prompt: If True, ask the user before copying.

    Returns:
        True if the text was copied.

    Side Effects:
        Copies data to the system clipboard.
        Spawns a background daemon thread if auto-clear is enabled.

    Security Notes:
        - A failure to reach the clipboard is logged, never raised, so
          the code is still shown on screen.
    """
    if not text:
        print(" Nothing to copy.")
        return False

    if prompt and input(" Copy to clipboard? (y/n): ").strip().lower() != "y":
        return False

    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        logger.warning(f"[{pendulum.now().to_iso8601_string()}] Clipboard unavailable: {e}")
        print(" Clipboard unavailable.")
        return False

    print(" Copied!" + (f" (auto-clears in {timeout}s)" if timeout > 0 else ""), flush=True)

    if timeout <= 0:
        return True

    def auto_clear():
        time.sleep(timeout)
        try:
            # Leave the clipboard alone if the user copied something else
            if pyperclip.paste() == text:
                clear_clipboard_history()
        except pyperclip.PyperclipException as e:
            logger.warning(f"[{pendulum.now().to_iso8601_string()}] Clipboard auto-clear failed: {e}")

    threading.Thread(target=auto_clear, daemon=True).start()
    return True


def clear_clipboard_history(clipboard_length: int = CLIPBOARD_LENGTH) -> None:
    """
    Clear the clipboard, then flood it with random data.

    Overwrites the clipboard repeatedly in an effort to evict the code
    from clipboard history. Behavior depends on platform and clipboard
    manager capabilities.

    Args:
        clipboard_length: Number of random clipboard entries to generate.

    Security Notes:
        - Flooding is skipped if WIPE_CLIPBOARD is False in configuration.
        - Best-effort only; some clipboard managers retain long histories.
    """
    pyperclip.copy("")

    if not WIPE_CLIPBOARD:
        return

    char_set = string.ascii_letters + string.digits

    for i in range(clipboard_length):
        fake_data = ''.join(secrets.choice(char_set) for _ in range(12))
        pyperclip.copy(f"[{i:03d}] {fake_data}")

        # Defeats throttling
        time.sleep(0.07)

    pyperclip.copy("Clipboard history cleared")
