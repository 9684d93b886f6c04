from __future__ import annotations

import io
import zipfile
from typing import Dict, List

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException


class UnreadableWorkbookError(ValueError):
    pass


class MissingSheetError(LookupError):
    pass


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _open(data: bytes):
    try:
        return load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (zipfile.BadZipFile, InvalidFileException, KeyError) as exc:
        raise UnreadableWorkbookError(f"Not a readable .xlsx workbook: {exc}") from exc


def list_sheets(data: bytes) -> List[str]:
    workbook = _open(data)
    try:
        return list(workbook.sheetnames)
    finally:
        workbook.close()


def read_sheet(data: bytes, sheet_name: str) -> List[Dict[str, str]]:
    """Rows of a sheet as dicts keyed by the first row's cells (blank cells -> "")."""
    workbook = _open(data)
    try:
        if sheet_name not in workbook.sheetnames:
            raise MissingSheetError(f'Sheet "{sheet_name}" not found. Available: {", ".join(workbook.sheetnames)}')
        rows = workbook[sheet_name].iter_rows(values_only=True)
        header_row = next(rows, None)
        if not header_row:
            return []
        headers = [_cell_text(cell).strip() for cell in header_row]
        records = []
        for values in rows:
            if values is None or all(value in (None, "") for value in values):
                continue
            record = {}
            for index, header in enumerate(headers):
                if not header:
                    continue
                record[header] = _cell_text(values[index]) if index < len(values) else ""
            records.append(record)
        return records
    finally:
        workbook.close()
