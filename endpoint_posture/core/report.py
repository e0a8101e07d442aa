import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path

from endpoint_posture.core.errors import CatastrophicSetupError
from endpoint_posture.core.models import ComplianceReport, FollowUpOutcome
from endpoint_posture.reports.formatter import render_html, render_json

logger = logging.getLogger(__name__)

REPORT_PREFIX = "security_review"


def ensure_output_dir(out_dir: str | Path) -> Path:
    """Create the output directory up front; failing here aborts the run."""
    out_dir = Path(out_dir)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CatastrophicSetupError(f"Cannot create output directory {out_dir}: {e}") from e
    if not out_dir.is_dir() or not os.access(out_dir, os.W_OK):
        raise CatastrophicSetupError(f"Output directory {out_dir} is not writable")
    return out_dir


def report_path(out_dir: str | Path, fmt: str, when: datetime | None = None) -> Path:
    """Timestamped file name; a numeric suffix is added if the second is already taken."""
    stamp = (when or datetime.now()).strftime("%Y%m%d_%H%M%S")
    ext = "html" if fmt == "html" else "json"
    out_dir = Path(out_dir)
    candidate = out_dir / f"{REPORT_PREFIX}_{stamp}.{ext}"
    n = 2
    while candidate.exists():
        candidate = out_dir / f"{REPORT_PREFIX}_{stamp}_{n}.{ext}"
        n += 1
    return candidate


def write_report(
    report: ComplianceReport,
    out_dir: str | Path,
    fmt: str = "json",
    followup: FollowUpOutcome | None = None,
    title: str = "Endpoint Security Review",
) -> Path:
    """
    Render and persist one run. Answers are merged in only when the user
    submitted the form; a cancelled or unshown form leaves the report alone.

    The document is written to a temporary file and renamed into place, so
    a failure never leaves a partial artifact behind.
    """
    out_dir = ensure_output_dir(out_dir)
    answers = followup.answers if followup is not None and followup.collected else None

    if fmt == "html":
        text = render_html(report, answers, title=title)
    else:
        text = render_json(report, answers)

    out_path = report_path(out_dir, fmt)
    tmp = None
    try:
        fd, tmp = tempfile.mkstemp(dir=out_dir, prefix=".tmp_", suffix=out_path.suffix)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, out_path)
    except OSError as e:
        if tmp is not None:
            Path(tmp).unlink(missing_ok=True)
        raise CatastrophicSetupError(f"Could not write report {out_path}: {e}") from e

    logger.info("Report written to %s", out_path)
    return out_path
