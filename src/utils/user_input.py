import getpass
import re

from config.config_stip import MAX_PROMPT_TRIES


def get_int(prompt: str, default=None, reprompt=True):
    """
    Prompt the user until a valid positive integer is entered.

    Allows the user to press Enter to accept a default value if provided.
    Rejects any input containing non-digit characters.

    Args:
        prompt: Text displayed to the user.
        default: Value returned if the user submits empty input. If None,
            the prompt repeats until a valid integer is entered.
        reprompt: If False, bypasses user input and returns the default.

    Returns:
        An integer parsed from user input, the default value if accepted,
        or None if the user enters 'q' to quit.
    """
    while True:
        val = input(prompt).strip() if reprompt else default

        if not val and default is not None:
            return default
        if re.fullmatch(r"[0-9]+", val):
            return int(val)
        if val == 'q':
            return None

        print("   Invalid - numbers only  (q) to quit")


def prompt_in_range(label: str, low: int, high: int,
                    tries: int = MAX_PROMPT_TRIES) -> int | None:
    """
    Ask for a number between `low` and `high` inclusive.

    Args:
        label: Text shown before the accepted range.
        low: Smallest accepted value.
        high: Largest accepted value.
        tries: Number of answers accepted before giving up.

    Returns:
        The chosen number, or None if the user quit or ran out of tries.
    """
    for _ in range(tries):
        choice = get_int(f" {label} [{low}-{high}]: ")
        if choice is None:
            return None
        if low <= choice <= high:
            return choice
        print(f"   Out of range - choose between {low} and {high}")

    return None


def ask_password(prompt: str = " Password: ") -> str:
    """Read a password without echoing it."""
    return getpass.getpass(prompt)
