from __future__ import annotations
import logging
import logging.handlers
import time
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: Union[str, int] = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
    max_log_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the `facegate` logger tree.

    Console output always; with log_dir, also rotating facegate.log and
    errors.log (ERROR and above). Calling it again replaces earlier handlers.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    root = logging.getLogger("facegate")
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "facegate.log", maxBytes=max_log_size, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_dir / "errors.log", maxBytes=max_log_size, backupCount=backup_count, encoding="utf-8"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        root.addHandler(error_handler)

    root.info("logging initialised (level=%s, dir=%s)", logging.getLevelName(level), log_dir)
    return root


class ActivityLogger:
    """
    Capture-time audit trail: enrollment and verification outcomes.
    Lines go to the `facegate.activity` logger and, when a path is given, to a
    timestamped text file.
    """

    def __init__(self, log_file_path: Optional[Union[str, Path]] = None):
        self.log = logging.getLogger("facegate.activity")
        self.log_file_path = Path(log_file_path) if log_file_path is not None else None
        if self.log_file_path is not None:
            self.log_file_path.parent.mkdir(parents=True, exist_ok=True)

    def log_activity(self, subject: str, activity: str) -> None:
        self.log.info("%s: %s", subject, activity)
        if self.log_file_path is None:
            return
        timestamp = time.strftime(DATE_FORMAT)
        try:
            with open(self.log_file_path, "a", encoding="utf-8") as f:
                f.write(f"[{timestamp}] {subject}: {activity}\n")
        except OSError:
            self.log.exception("could not write activity log %s", self.log_file_path)

    def log_enrollment(self, owner_id: str, accepted: int, rejected: int) -> None:
        self.log_activity(owner_id, f"enrolled {accepted} samples ({rejected} rejected)")

    def log_enrollment_failed(self, owner_id: str, reason: str) -> None:
        self.log_activity(owner_id, f"enrollment failed: {reason}")

    def log_verification(
        self,
        subject: str,
        verified: bool,
        reason: str,
        similarity: Optional[float] = None,
        liveness: Optional[float] = None,
    ) -> None:
        parts = [("verified" if verified else "rejected"), f"reason={reason}"]
        if similarity is not None:
            parts.append(f"similarity={similarity:.3f}")
        if liveness is not None:
            parts.append(f"liveness={liveness:.2f}")
        self.log_activity(subject, " ".join(parts))
