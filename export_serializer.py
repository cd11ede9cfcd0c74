"""
Write report sheets to disk.

Two strategies exist. ``WorkbookExportStrategy`` writes every sheet into one
``.xlsx`` workbook through openpyxl. ``CsvExportStrategy`` writes one UTF-8 CSV
per sheet, each starting with a byte-order mark so spreadsheet applications
detect the encoding. ``select_export_strategy`` probes for openpyxl once at
startup and the chosen strategy is injected into ``ExportSerializer``.
"""

import abc
import asyncio
import csv
import datetime
import importlib
import io
import re
from pathlib import Path

import click

from notices import Notifier
from report_sheets import Sheet

BYTE_ORDER_MARK = '\ufeff'
EXCEL_SHEET_TITLE_LIMIT = 31
_UNSAFE_FILENAME_CHARS = re.compile(r'[^A-Za-z0-9._@-]+')


class ExportError(Exception):
    """Writing an export file failed."""


def export_base_name(username: str, export_date: datetime.date | None = None) -> str:
    """``UserAccessSummary_<username>_<YYYY-MM-DD>`` with unsafe characters replaced."""

    export_date = export_date or datetime.date.today()
    safe_username = _UNSAFE_FILENAME_CHARS.sub('_', username or 'user').strip('_') or 'user'
    return f"UserAccessSummary_{safe_username}_{export_date:%Y-%m-%d}"


def probe_spreadsheet_support() -> bool:
    """Return True when openpyxl can be imported."""

    try:
        importlib.import_module('openpyxl')
    except ImportError:
        return False
    return True


class ExportStrategy(abc.ABC):
    name = ''

    @abc.abstractmethod
    async def write(self, sheets: list[Sheet], export_dir: Path, base_name: str) -> list[Path]:
        """Write ``sheets`` and return the created files in write order."""


class WorkbookExportStrategy(ExportStrategy):
    """All sheets in one workbook, in emission order."""

    name = 'xlsx'

    def _save(self, sheets: list[Sheet], path: Path) -> None:
        from openpyxl import Workbook
        from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
        from openpyxl.styles import Font
        from openpyxl.utils import get_column_letter

        wb = Workbook()
        wb.remove(wb.active)
        for sheet in sheets:
            ws = wb.create_sheet(title=sheet.name[:EXCEL_SHEET_TITLE_LIMIT])
            for row in sheet.rows:
                # worksheets reject control characters
                ws.append(
                    [ILLEGAL_CHARACTERS_RE.sub('', value) if isinstance(value, str) else value for value in row]
                )
            if sheet.rows:
                for cell in ws[1]:
                    cell.font = Font(bold=True)

            for col_idx, column in enumerate(ws.columns, 1):
                max_len = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
                ws.column_dimensions[get_column_letter(col_idx)].width = min(max(max_len + 2, 12), 60)
        wb.save(path)

    async def write(self, sheets: list[Sheet], export_dir: Path, base_name: str) -> list[Path]:
        path = export_dir / f"{base_name}.xlsx"
        try:
            export_dir.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(self._save, sheets, path)
        except (OSError, ValueError) as exc:
            raise ExportError(f"Unable to write workbook {path.name}: {exc}") from exc
        return [path]


def render_delimited(sheet: Sheet) -> str:
    """CSV text for one sheet, prefixed with a byte-order mark."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\r\n')
    for row in sheet.rows:
        writer.writerow(['' if value is None else value for value in row])
    return BYTE_ORDER_MARK + buffer.getvalue()


class CsvExportStrategy(ExportStrategy):
    """One CSV file per sheet, written one after another with a pause in between."""

    name = 'csv'

    def __init__(self, download_delay: float = 0.5):
        self.download_delay = download_delay

    async def write(self, sheets: list[Sheet], export_dir: Path, base_name: str) -> list[Path]:
        try:
            export_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExportError(f"Unable to create export directory {export_dir}: {exc}") from exc

        written: list[Path] = []
        for index, sheet in enumerate(sheets):
            if index and self.download_delay:
                await asyncio.sleep(self.download_delay)
            path = export_dir / f"{base_name}_{sheet.name.replace(' ', '_')}.csv"
            try:
                path.write_text(render_delimited(sheet), encoding='utf-8', newline='')
            except OSError as exc:
                raise ExportError(f"Unable to write {path.name}: {exc}") from exc
            click.echo(f"  Saved {path.name}")
            written.append(path)
        return written


def select_export_strategy(
    export_format: str,
    notifier: Notifier,
    download_delay: float = 0.5,
    spreadsheet_available: bool | None = None,
) -> ExportStrategy:
    """Pick the export strategy once. A failed probe only produces a single warning."""

    if export_format == 'csv':
        return CsvExportStrategy(download_delay)

    if spreadsheet_available is None:
        spreadsheet_available = probe_spreadsheet_support()
    if spreadsheet_available:
        return WorkbookExportStrategy()

    notifier.warning(
        "Spreadsheet support is unavailable; each sheet will be exported as a separate CSV file.",
        title='Export',
    )
    return CsvExportStrategy(download_delay)


class ExportSerializer:
    def __init__(self, strategy: ExportStrategy, export_dir: Path, notifier: Notifier):
        self.strategy = strategy
        self.export_dir = Path(export_dir)
        self.notifier = notifier

    async def export(self, sheets: list[Sheet], base_name: str) -> list[Path]:
        """Write the sheets and report the outcome. Failures are reported, not retried."""

        try:
            paths = await self.strategy.write(sheets, self.export_dir, base_name)
        except ExportError as exc:
            self.notifier.error(f"Error exporting access report: {exc}")
            return []

        if self.strategy.name == 'xlsx':
            self.notifier.success(f"Excel file exported successfully to {paths[0]}")
        else:
            self.notifier.success(
                f"Exported {len(paths)} CSV file(s) to {self.export_dir}"
            )
        return paths
