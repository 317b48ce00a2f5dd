"""
Statement Reader
Loads an XLSX/CSV royalty statement into raw row dicts keyed by the source
headers. Publisher exports often carry title/banner rows above the real
header, so the header row is detected by scoring the first rows.
"""

import csv
import logging
import os
from typing import Any, Dict, List, Optional

import pandas as pd

from lexicon import DEFAULT_MAPPING

log = logging.getLogger('encore')

SCAN_ROWS = 30
EXCEL_EXTS = ('.xlsx', '.xlsm', '.xls')


def _known_columns() -> set:
    cols = set()
    for per_source in DEFAULT_MAPPING.values():
        for entry in per_source.values():
            if isinstance(entry, list):
                cols.update(c.lower() for c in entry)
            else:
                cols.add(entry.lower())
    return cols


_KNOWN_COLUMNS = _known_columns()


def _sniff_csv_encoding(filepath: str) -> str:
    """Try strict UTF-8 decodes first; latin-1 accepts any byte string."""
    try:
        with open(filepath, 'rb') as f:
            raw = f.read()
    except IOError:
        return 'utf-8'
    for enc in ('utf-8-sig', 'utf-8'):
        try:
            raw.decode(enc)
            return enc
        except UnicodeDecodeError:
            continue
    return 'latin-1'


def _pick_best_sheet(sheet_names: List[str]) -> str:
    """Prefer sheets that look like line-item royalty detail; skip summary tabs."""
    prefer_kw = ['royalt', 'detail', 'statement', 'performance', 'earnings', 'line item', 'data']
    skip_kw = ['summary', 'cover', 'payment', 'totals', 'instructions', 'notes', 'info']

    lower_names = [(s, s.lower().strip()) for s in sheet_names]
    for kw in prefer_kw:
        for original, low in lower_names:
            if kw in low:
                return original
    for original, low in lower_names:
        if not any(sk in low for sk in skip_kw):
            return original
    return sheet_names[0]


def _is_numeric(s: str) -> bool:
    s = s.replace(',', '').replace(' ', '').replace('$', '')
    try:
        float(s)
        return True
    except ValueError:
        return False


def detect_header_row(raw_rows: List[List[Any]]) -> int:
    """Index of the row that looks most like a header.

    Rows are scored by share of non-numeric text cells and fill ratio; cells
    that are known statement column names count double. Wider rows win ties.
    """
    best_row = 0
    best_score = (-1.0, -1)
    for idx, row in enumerate(raw_rows):
        cells = [str(c).strip() for c in row]
        if not any(cells):
            continue
        total = len(cells)
        non_empty = sum(1 for c in cells if c)
        text_cells = sum(1 for c in cells if c and not _is_numeric(c))
        known = sum(1 for c in cells if c.lower() in _KNOWN_COLUMNS)
        score = (text_cells / total) * 0.7 + (non_empty / total) * 0.3 + known
        candidate = (score, non_empty)
        if candidate > best_score:
            best_score = candidate
            best_row = idx
    return best_row


def _unique_headers(cells: List[Any]) -> List[str]:
    headers: List[str] = []
    seen: Dict[str, int] = {}
    for i, c in enumerate(cells):
        name = str(c).strip() if c is not None else ''
        if not name or name.lower() == 'nan':
            name = f'Column {i + 1}'
        if name in seen:
            seen[name] += 1
            name = f'{name}.{seen[name]}'
        else:
            seen[name] = 0
        headers.append(name)
    return headers


def _cell(value):
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.strftime('%Y-%m-%d')
    return value


def _read_grid(filepath: str, sheet: Optional[str]) -> Dict[str, Any]:
    ext = os.path.splitext(filepath)[1].lower()
    if ext in EXCEL_EXTS:
        xls = pd.ExcelFile(filepath)
        sheets = xls.sheet_names
        target = sheet if sheet and sheet in sheets else _pick_best_sheet(sheets)
        df = pd.read_excel(xls, sheet_name=target, header=None, dtype=object)
        return {'grid': df.values.tolist(), 'sheet': target, 'sheets': sheets}
    if ext in ('.csv', '.txt'):
        enc = _sniff_csv_encoding(filepath)
        with open(filepath, encoding=enc, newline='') as f:
            grid = [row for row in csv.reader(f)]
        return {'grid': grid, 'sheet': None, 'sheets': None}
    raise ValueError(f'Unsupported statement file type: {ext or filepath}')


def read_statement_rows(filepath: str, sheet: Optional[str] = None) -> Dict[str, Any]:
    """Read a statement file.

    Returns dict with keys:
        headers: detected header names (blank headers become 'Column N')
        rows: list of {header: value} dicts, fully blank rows dropped
        header_row: 0-based index of the header row in the raw grid
        sheet / sheets: chosen sheet and all sheet names (None for CSV)
    """
    loaded = _read_grid(filepath, sheet)
    grid = loaded['grid']
    if not grid:
        log.warning("Statement %s is empty", os.path.basename(filepath))
        return {'headers': [], 'rows': [], 'header_row': 0,
                'sheet': loaded['sheet'], 'sheets': loaded['sheets']}

    header_row = detect_header_row(grid[:SCAN_ROWS])
    headers = _unique_headers(grid[header_row])

    rows: List[Dict[str, Any]] = []
    for raw in grid[header_row + 1:]:
        values = [_cell(v) for v in raw]
        if all(v is None or str(v).strip() == '' for v in values):
            continue
        record = {}
        for i, h in enumerate(headers):
            record[h] = values[i] if i < len(values) else None
        rows.append(record)

    log.info("Read %d rows from %s (header row %d)",
             len(rows), os.path.basename(filepath), header_row + 1)
    return {'headers': headers, 'rows': rows, 'header_row': header_row,
            'sheet': loaded['sheet'], 'sheets': loaded['sheets']}
