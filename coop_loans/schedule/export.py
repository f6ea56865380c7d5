"""CSV export of installment schedules."""

import csv
import io
import logging
import re
from pathlib import Path

from coop_loans.formatters import format_currency, format_date
from coop_loans.models.schedule import InstallmentScheduleEntry

logger = logging.getLogger(__name__)

CSV_HEADER = ["Installment", "Amount", "Due Date", "Status", "Paid Date", "Paid Amount"]
MISSING = "N/A"


def _row(entry: InstallmentScheduleEntry) -> list[str]:
    return [
        str(entry.installment_number),
        format_currency(entry.amount),
        format_date(entry.due_date),
        entry.status.value,
        format_date(entry.paid_date) if entry.paid_date else MISSING,
        format_currency(entry.paid_amount) if entry.paid_amount else MISSING,
    ]


def schedule_to_csv(entries: list[InstallmentScheduleEntry]) -> str:
    """Render a schedule as CSV text, one row per entry in sequence order."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for entry in sorted(entries, key=lambda e: e.installment_number):
        writer.writerow(_row(entry))
    return buffer.getvalue()


def export_csv(
    entries: list[InstallmentScheduleEntry],
    label: str,
    output_dir: str | Path,
) -> Path:
    """Write ``<label>_installment_schedule.csv`` under ``output_dir``.

    Parameters
    ----------
    entries : list[InstallmentScheduleEntry]
        Schedule to export.
    label : str
        Commodity or loan name used in the file name.
    output_dir : str | Path
        Directory to write to (created if missing).

    Returns
    -------
    Path
        Path of the written file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    safe_label = re.sub(r"[^\w.-]+", "_", label).strip("_") or "schedule"
    file_path = output_dir / f"{safe_label}_installment_schedule.csv"

    with open(file_path, "w", encoding="utf-8", newline="") as f:
        f.write(schedule_to_csv(entries))

    logger.info("Exported %d installments to %s", len(entries), file_path)
    return file_path
