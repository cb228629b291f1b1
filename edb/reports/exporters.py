import csv
import io
import json
from datetime import date, datetime
from typing import Dict, List, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
EXCEL_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
JSON_MEDIA_TYPE = "application/json"

EXPORT_FORMATS = {
    "csv": (CSV_MEDIA_TYPE, "csv"),
    "excel": (EXCEL_MEDIA_TYPE, "xlsx"),
    "json": (JSON_MEDIA_TYPE, "json"),
}


def _cell(value):
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    return "" if value is None else value


def to_csv(columns: Sequence[str], rows: List[Dict]) -> bytes:
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(row.get(c)) for c in columns])
    # BOM pour qu'Excel détecte l'UTF-8
    return ("\ufeff" + out.getvalue()).encode("utf-8")


def to_excel(columns: Sequence[str], rows: List[Dict], title: str = "Export") -> bytes:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = title[:31]

    ws.append(list(columns))
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append([_cell(row.get(c)) for c in columns])

    for i, column in enumerate(columns, start=1):
        width = max([len(str(column))] + [len(str(_cell(row.get(column)))) for row in rows])
        ws.column_dimensions[get_column_letter(i)].width = min(width + 2, 50)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def to_json(columns: Sequence[str], rows: List[Dict]) -> bytes:
    data = [{c: row.get(c) for c in columns} for row in rows]
    return json.dumps(data, ensure_ascii=False, default=str, indent=2).encode("utf-8")


def render(fmt: str, columns: Sequence[str], rows: List[Dict], title: str = "Export") -> bytes:
    if fmt == "csv":
        return to_csv(columns, rows)
    if fmt == "excel":
        return to_excel(columns, rows, title=title)
    if fmt == "json":
        return to_json(columns, rows)
    raise ValueError(f"Format d'export inconnu : {fmt}")
