import logging
import sys


class BelowWarningFilter(logging.Filter):
    """
    Lets through records below WARNING, so the stdout handler leaves
    warnings and errors to the stderr handler.
    """
    def filter(self, record):
        return record.levelno < logging.WARNING


class LauncherFormatter(logging.Formatter):
    """
    Renders launcher records as '[launcher] message'.

    Records logged with extra={"tag": name} are rendered with that tag instead,
    so per-child lifecycle lines read like the child's own relayed output.
    """

    def __init__(self, default_tag: str = "launcher") -> None:
        super().__init__("%(message)s")
        self.default_tag = default_tag

    def format(self, record):
        message = super().format(record)
        tag = getattr(record, "tag", None) or self.default_tag
        return f"[{tag}] {message}"


def setup_logging(console_level: int = logging.INFO, stdout=None, stderr=None) -> None:
    """
    Configures the root logger for the launcher.
    Informational records go to stdout, warnings and errors to stderr. Any
    previously configured handlers are cleared to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param stdout: Stream for records below WARNING. Defaults to sys.stdout.
    :param stderr: Stream for WARNING and above. Defaults to sys.stderr.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    formatter = LauncherFormatter()

    # --- Informational Handler ---
    out_handler = logging.StreamHandler(stdout or sys.stdout)
    out_handler.setLevel(console_level)
    out_handler.addFilter(BelowWarningFilter())
    out_handler.setFormatter(formatter)
    root_logger.addHandler(out_handler)

    # --- Error Handler ---
    err_handler = logging.StreamHandler(stderr or sys.stderr)
    err_handler.setLevel(max(console_level, logging.WARNING))
    err_handler.setFormatter(formatter)
    root_logger.addHandler(err_handler)

    # The probe's HTTP stack is chatty at DEBUG; keep it out of verbose output.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
