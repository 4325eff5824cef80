"""
Report persistence.

Write-once text files for finished consultation reports.
"""

import logging
from pathlib import Path
from typing import Optional

from clinical_tree.utils.helpers import generate_report_filename

logger = logging.getLogger(__name__)


class ReportStore:
    """
    Stores serialized consultation reports.

    Layout:
        outputs/reports/
            log_Ankle_fractures_2026-10-18_a3f7e2b9.txt
            ...

    Design:
    - Write-once (never overwrite)
    - One file per saved report
    - Downloads resolve only names directly inside base_dir
    """

    def __init__(self, base_dir: str = "outputs/reports"):
        """
        Initialize report store.

        Args:
            base_dir: Directory for report files (created if missing)
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"ReportStore initialized: {self.base_dir}")

    def save(self, report_text: str, title: str, filename: Optional[str] = None) -> Path:
        """
        Save report text.

        Args:
            report_text: Serialized report
            title: Questionnaire title used for the generated filename
            filename: Explicit filename (overrides the generated one)

        Returns:
            Path: Path of the written file

        Raises:
            FileExistsError: If the file already exists (double save)
            ValueError: If an explicit filename escapes base_dir
        """
        if filename is None:
            filename = generate_report_filename(title)

        filepath = self.resolve(filename)
        if filepath is None:
            raise ValueError(f"Invalid report filename: {filename!r}")

        if filepath.exists():
            raise FileExistsError(
                f"Report file already exists: {filepath}. "
                f"Reports are never overwritten."
            )

        with open(filepath, 'w', encoding='utf-8') as f:
            f.write(report_text)

        logger.info(f"Saved report: {filepath.name}")
        return filepath

    def resolve(self, filename: str) -> Optional[Path]:
        """
        Map a report filename to its path inside base_dir.

        Returns:
            Path, or None if the name is empty, contains separators or
            would resolve outside base_dir
        """
        if not filename or filename in ('.', '..') or '/' in filename or '\\' in filename:
            logger.warning(f"Rejected report filename: {filename!r}")
            return None

        base = self.base_dir.resolve()
        candidate = (base / filename).resolve()
        if candidate.parent != base:
            logger.warning(f"Rejected report filename outside store: {filename!r}")
            return None
        return candidate

    def load(self, filename: str) -> Optional[str]:
        """Read a stored report, or None if it doesn't exist."""
        filepath = self.resolve(filename)
        if filepath is None or not filepath.is_file():
            return None
        with open(filepath, 'r', encoding='utf-8') as f:
            return f.read()
