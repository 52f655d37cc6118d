from __future__ import annotations

import logging
from pathlib import Path

import openpyxl

from foundry.schemas import ImportResult
from foundry.store import EntityStore
from foundry.utils import pick

log = logging.getLogger(__name__)

SOURCES = ("gong", "zendesk", "email", "slack", "other")
SEVERITIES = ("critical", "high", "medium", "low")
FREQUENCIES = ("daily", "weekly", "monthly", "rare")
RENEWAL_RISKS = ("high", "medium", "low")

# field -> accepted header names (matched case-insensitively)
_COLUMNS: dict[str, tuple[str, ...]] = {
    "raw_text": ("text", "raw_text", "raw text"),
    "source": ("source",),
    "source_url": ("source_url", "source url", "url"),
    "customer": ("customer", "account"),
    "arr": ("arr",),
    "severity": ("severity",),
    "frequency": ("frequency",),
    "renewal_risk": ("renewal_risk", "renewal risk"),
}

_ENUMS: dict[str, tuple[str, ...]] = {
    "source": SOURCES,
    "severity": SEVERITIES,
    "frequency": FREQUENCIES,
    "renewal_risk": RENEWAL_RISKS,
}


def _s(value: object) -> str:
    """Safely coerce cell value to stripped string."""
    if value is None:
        return ""
    return str(value).strip()


def _col(row: tuple, idx: int | None) -> object:
    """Safely get a column value from a row tuple."""
    if idx is None:
        return None
    return row[idx] if idx < len(row) else None


def _header_map(header: tuple) -> dict[str, int]:
    names = [_s(h).casefold() for h in header]
    mapping: dict[str, int] = {}
    for field, aliases in _COLUMNS.items():
        for alias in aliases:
            if alias in names:
                mapping[field] = names.index(alias)
                break
    return mapping


def _normalize_key(text: str, customer: str | None) -> str:
    return f"{' '.join(text.split()).casefold()}|{(customer or '').strip().casefold()}"


def _parse_row(row: tuple, columns: dict[str, int]) -> dict:
    data: dict = {}
    for field in _COLUMNS:
        val = _s(_col(row, columns.get(field)))
        if field in _ENUMS:
            val = pick(val.lower(), _ENUMS[field], "")
        data[field] = val or None
    return data


def import_signals_xlsx(file_path: str | Path, store: EntityStore) -> ImportResult:
    """Import signals from the first sheet of an XLSX file. Skips blanks and duplicates.

    Raises ``ValueError`` if the header row has no text column.
    """
    file_path = Path(file_path)
    wb = openpyxl.load_workbook(file_path, read_only=True, data_only=True)
    try:
        ws = wb.worksheets[0]
        rows = ws.iter_rows(values_only=True)
        header = next(rows, None) or ()
        columns = _header_map(header)
        if "raw_text" not in columns:
            raise ValueError("Sheet needs a 'text' or 'raw_text' column")
        parsed = [_parse_row(row, columns) for row in rows if row]
    finally:
        wb.close()

    existing = {_normalize_key(s.raw_text, s.customer) for s in store.find("signal")}

    imported = skipped = duplicates = 0
    for data in parsed:
        if not data["raw_text"]:
            skipped += 1
            continue
        key = _normalize_key(data["raw_text"], data["customer"])
        if key in existing:
            duplicates += 1
            continue
        store.insert("signal", {**data, "status": "new"})
        existing.add(key)
        imported += 1

    store.commit()
    log.info("Imported %d signals from %s (%d skipped, %d duplicates)",
             imported, file_path.name, skipped, duplicates)
    return ImportResult(imported=imported, skipped=skipped, duplicates=duplicates)
