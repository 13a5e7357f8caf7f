"""
Stip - show TOTP codes stored as QR images, in zip archives or in KeePass databases
"""
# ==============================================================
# Standard imports
# ==============================================================
import argparse
import atexit
import json
import logging
import os
import sys
import time

# ==============================================================
# Other imports
# ==============================================================
try:
    import pendulum
    from config.config_stip import *
    from config.logging_config import setup_logging
    from utils.Credential import Credential
    from utils.errors import StipError, VaultError, VaultErrorKind
    from utils.vault_utils import (ArchiveEntry, list_entries, list_secrets, read_entry,
                                   resolve_and_open, resolve_location, secret_from_bytes)
    from utils.keepass_utils import is_database, list_credentials
    from utils.totp import Clock, current_token, progress, remaining_seconds, system_clock
    from utils.otpauth import build_url
    from utils.qr_utils import export_qr
    from utils.clipboard_utils import clear_clipboard_history, copy_to_clipboard
    from utils.user_input import ask_password, prompt_in_range

except ImportError as e:
    missing_package = e.name if hasattr(e, "name") else "unknown package"
    print("Missing required dependency!")
    print(f"  {missing_package} is not installed")
    logging.error(f"  {missing_package} is not installed. See pyproject.toml")
    print("\nInstall with:")
    print("  pip install -e .")
    sys.exit(1)

logger = logging.getLogger(__name__)

# Stands in for "-p" given without a value
ASK_PASSWORD = object()

PASSWORD_ERRORS = (VaultErrorKind.PASSWORD_REQUIRED, VaultErrorKind.INVALID_PASSWORD)

Row = tuple[str, Credential | None]


# ==============================================================
# Functions
# ==============================================================
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stip",
        description="Show TOTP codes stored as QR images, in zip archives or in KeePass databases.",
    )
    parser.add_argument("path",
                        help="QR image, otpauth text file, file inside a zip archive "
                             "(vault.zip/folder/qr.png) or .kdbx database")
    parser.add_argument("-p", "--password", nargs="?", const=ASK_PASSWORD, default=None,
                        help="password for encrypted entries; prompts when given without a value")
    parser.add_argument("-i", "--interactive", action="store_true",
                        help="choose an entry of the archive from a list")
    parser.add_argument("-l", "--list", action="store_true",
                        help="show every secret stored in the archive")
    parser.add_argument("--json", action="store_true", help="print tokens as JSON")
    parser.add_argument("-c", "--copy", action="store_true", help="copy the code to the clipboard")
    parser.add_argument("-w", "--watch", action="store_true",
                        help="keep showing the current code until Ctrl + C")
    parser.add_argument("--show-secret", action="store_true",
                        help="print the base32 secret, digits and period")
    parser.add_argument("--export-qr", metavar="FILE", help="write the credential as a QR code PNG")
    parser.add_argument("--export-url", action="store_true", help="print the otpauth URL")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="also print skipped entries and other warnings")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {VERSION}")
    return parser


def wipe_terminal() -> None:
    """
    Clears the terminal screen.

    Side Effects:
        Executes a system command to clear the terminal window.
    """
    os.system('cls' if os.name == 'nt' else 'clear')


def with_password(action, password=None):
    """
    Call `action(password)`, asking for a password when it needs one.

    A missing password is prompted for. A wrong one is prompted for again,
    up to MAX_PASSWORD_TRIES times.

    Args:
        action: Callable taking the password (or None).
        password: First password to try, None, or ASK_PASSWORD to prompt
            before the first attempt.

    Returns:
        Whatever `action` returns.

    Raises:
        VaultError: If the action fails for another reason or the tries
            run out.
    """
    if password is ASK_PASSWORD:
        password = ask_password()

    attempts = 0
    while True:
        try:
            return action(password)
        except VaultError as e:
            if e.kind not in PASSWORD_ERRORS or attempts >= MAX_PASSWORD_TRIES:
                raise
            if e.kind is VaultErrorKind.INVALID_PASSWORD:
                logger.info(f"[{pendulum.now().to_iso8601_string()}] Invalid password, attempt {attempts + 1}")
                print(" Invalid password.")
            attempts += 1
            password = ask_password()


def choose_entry(container) -> ArchiveEntry | None:
    """
    List the entries of an archive and let the user pick one.

    Encrypted entries are marked with [E].

    Returns:
        The chosen entry, or None if the archive is empty or no valid
        choice was made.
    """
    entries = list_entries(container)
    if not entries:
        print(" Archive is empty.")
        return None

    print(f"\n Entries in {container}")
    print(SEP_SM)
    for i, entry in enumerate(entries, 1):
        mark = "[E]" if entry.is_encrypted else "   "
        print(f" {i:>3}) {mark} {entry.name}")
    print(SEP_SM)

    choice = prompt_in_range("Select entry", 1, len(entries))
    if choice is None:
        return None
    return entries[choice - 1]


def load_rows(args) -> list[Row]:
    """
    Collect the credentials named on the command line.

    Returns:
        (label, credential) pairs. The credential is None for an archive
        entry the password did not open.

    Raises:
        StipError: If nothing usable could be read.
    """
    path = args.path
    password = args.password

    if is_database(path):
        credentials = with_password(lambda pw: list_credentials(path, pw), password)
        return [(credential.name, credential) for credential in credentials]

    if args.list:
        if password is ASK_PASSWORD:
            password = ask_password()
        container = resolve_location(path).container_path
        return [(secret.name, secret.credential) for secret in list_secrets(container, password)]

    if args.interactive:
        container = resolve_location(path).container_path
        entry = choose_entry(container)
        if entry is None:
            return []
        data = with_password(lambda pw: read_entry(container, entry, pw), password)
        credential = secret_from_bytes(data, entry.name)
        return [(credential.name, credential)]

    data = with_password(lambda pw: resolve_and_open(path, pw), password)
    credential = secret_from_bytes(data, str(path))
    return [(credential.name, credential)]


def progress_bar(fraction: float, width: int = PROGRESS_WIDTH) -> str:
    """Bar of the time left in the current period."""
    left = width - int(fraction * width)
    return "[" + "#" * left + "-" * (width - left) + "]"


def format_row(label: str, credential: Credential | None, now: float) -> str:
    name = label if len(label) <= NAME_LEN else label[:NAME_LEN - 3] + "..."
    if credential is None:
        return f" {name:<{NAME_LEN}}  [E] locked"

    code = current_token(credential, now).code
    half = len(code) // 2
    remaining = remaining_seconds(now, credential.period_seconds)
    return f" {name:<{NAME_LEN}}  {code[:half]} {code[half:]}  ({remaining:2d}s)"


def print_rows(rows: list[Row], now: float) -> None:
    for label, credential in rows:
        print(format_row(label, credential, now))


def print_json(rows: list[Row], now: float, single: bool) -> None:
    items = []
    for label, credential in rows:
        item = {"name": label, "locked": credential is None}
        if credential is not None:
            item.update(current_token(credential, now).to_dict())
        items.append(item)

    print(json.dumps(items[0] if single else items, indent=2))


def show_details(credential: Credential, now: float) -> None:
    """
    Print everything needed to set the credential up elsewhere.

    Security Notes:
        - Prints the shared secret to the terminal.
    """
    token = current_token(credential, now)
    valid_until = token.window_end.in_tz(pendulum.local_timezone()).format(DT_FORMAT)

    print(SEP_LG)
    print(f" Issuer:      {credential.issuer}")
    print(f" Account:     {credential.account_label}")
    print(f" Secret:      {credential.secret_b32()}")
    print(f" Digits:      {credential.digits}")
    print(f" Period:      {credential.period_seconds}s")
    print(f" Valid until: {valid_until}")
    print(SEP_LG)


def pick_credential(rows: list[Row]) -> Credential | None:
    """The only usable credential, or the one the user chooses."""
    usable = [(label, credential) for label, credential in rows if credential is not None]
    if not usable:
        print(" No unlocked credential.")
        return None
    if len(usable) == 1:
        return usable[0][1]

    for i, (label, _) in enumerate(usable, 1):
        print(f" {i:>3}) {label}")
    choice = prompt_in_range("Select credential", 1, len(usable))
    if choice is None:
        return None
    return usable[choice - 1][1]


def hold_clipboard(timeout: int = CLIPBOARD_TIMEOUT) -> None:
    """
    Keep the process alive until the clipboard is due to be cleared.

    Ctrl + C ends the wait early. The clipboard itself is cleared by the
    exit handler registered when the code was copied.
    """
    try:
        for remaining in range(timeout, 0, -1):
            print(f"\r Clearing clipboard in {remaining:2d}s (Ctrl + C to clear now)", end="", flush=True)
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    print()


def watch(rows: list[Row], clock: Clock = system_clock) -> None:
    """
    Show live codes until the user presses Ctrl + C.

    A single credential is shown on one refreshing line with a progress
    bar; several are redrawn as a table every second.
    """
    rows = [(label, credential) for label, credential in rows if credential is not None]
    if not rows:
        print(" No unlocked credential.")
        return

    print(" Generator started. Ctrl + C to stop.\n")
    try:
        while True:
            now = clock()
            if len(rows) == 1:
                label, credential = rows[0]
                bar = progress_bar(progress(lambda: now, credential.period_seconds))
                print(f"\r{format_row(label, credential, now)}  {bar}", end="", flush=True)
            else:
                wipe_terminal()
                print_rows(rows, now)
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n Stopped.")


def run(args, rows: list[Row], clock: Clock = system_clock) -> int:
    """Act on the loaded credentials according to the command line flags."""
    single = not (is_database(args.path) or args.list)
    now = clock()

    if args.json:
        print_json(rows, now, single)
    elif not args.watch:
        print_rows(rows, now)

    wants_one = args.show_secret or args.export_url or args.export_qr or args.copy
    credential = pick_credential(rows) if wants_one else None
    if wants_one and credential is None:
        return 1

    if args.show_secret:
        show_details(credential, now)

    if args.export_url:
        print(build_url(credential))

    if args.export_qr:
        try:
            path = export_qr(credential, args.export_qr)
        except OSError as e:
            logger.error(f"[{pendulum.now().to_iso8601_string()}] Failed to write {args.export_qr}: {e}")
            print(f" Error: could not write {args.export_qr}: {e.strerror or e}", file=sys.stderr)
            return 1
        print(f" QR code written to {path}")

    if args.copy:
        timeout = CLIPBOARD_TIMEOUT if args.watch else 0
        if copy_to_clipboard(current_token(credential, clock()).code, timeout=timeout) and CLIPBOARD_TIMEOUT > 0:
            atexit.register(clear_clipboard_history)
            if not args.watch:
                hold_clipboard(CLIPBOARD_TIMEOUT)

    if args.watch and not args.json:
        watch(rows, clock)

    return 0


def main(argv=None, clock: Clock = system_clock) -> int:
    """
    Command line entry point.

    Returns:
        Process exit status: 0 on success, 1 on any Stip error.
    """
    args = build_parser().parse_args(argv)
    setup_logging(verbose=args.verbose)

    rows = []
    try:
        rows = load_rows(args)
        if not rows:
            print(" Nothing to show.")
            return 1
        return run(args, rows, clock)

    except StipError as e:
        logger.error(f"[{pendulum.now().to_iso8601_string()}] {args.path}: {e}")
        print(f" Error: {e}", file=sys.stderr)
        return 1

    finally:
        for _, credential in rows:
            if credential is not None:
                credential.wipe()


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
