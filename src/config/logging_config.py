import logging
import os
import sys
import traceback
import pendulum

from config.config_stip import LOG_FILE, LOG_LEVEL, VERSION

# File named in the crash message, set by setup_logging
log_path = LOG_FILE


def setup_logging(log_file: str = LOG_FILE, level: int = LOG_LEVEL,
                  verbose: bool = False) -> None:
    """
    Send log records to `log_file` and install the crash hook.

    Args:
        log_file: File appended to.
        level: Lowest level written to the file.
        verbose: Also print warnings (skipped entries, bad URLs) to stderr.
    """
    global log_path
    root = logging.getLogger()
    if root.handlers:
        return  # already configured

    logging.basicConfig(
        filename=log_file,
        filemode="a",
        level=min(level, logging.WARNING) if verbose else level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if verbose:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.WARNING)
        console.setFormatter(logging.Formatter(" %(levelname)s: %(message)s"))
        root.addHandler(console)

    log_path = log_file
    sys.excepthook = log_uncaught_exceptions


def log_uncaught_exceptions(exctype, value, tb):
    """Log a trimmed traceback instead of printing one, Ctrl + C excepted."""
    if issubclass(exctype, KeyboardInterrupt):
        sys.__excepthook__(exctype, value, tb)
        return

    now = pendulum.now().to_iso8601_string()

    lines = [
        f'  File "{os.path.basename(frame.filename)}", line {frame.lineno}, in {frame.name}'
        for frame in traceback.extract_tb(tb)
    ]
    trace_summary = "\n".join(reversed(lines)) if lines else "  <no traceback>"
    error_msg = f"{exctype.__name__}: {value}"

    logging.error(
        f"[{now}] Stip {VERSION} uncaught exception: {error_msg}\n"
        f"Traceback (most recent call first):\n"
        f"{trace_summary}\n"
    )

    print("\nError! Something went wrong.", file=sys.stderr)
    print(f"Details saved to {log_path}\n", file=sys.stderr)
