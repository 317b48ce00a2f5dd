"""
Statement Field Mapper
Resolves raw royalty-statement columns onto the canonical ENCORE field set per
revenue source, normalizes values by field kind, and reports unmapped columns
and missing required fields. Never raises on malformed data.
"""

import logging
import re
import warnings
from collections import namedtuple
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

import lexicon
from lexicon import (
    DEFAULT_MAPPING, ENCORE_STANDARD_FIELDS, KNOWN_SOURCES, REQUIRED_FIELDS,
    ROW_INDEX_KEY, SOURCE_MARKERS, STATEMENT_SOURCE_KEY, Source, resolve_source,
)

log = logging.getLogger('encore')

# Permissive parse result: the normalized value plus whether a default was substituted
ParsedValue = namedtuple('ParsedValue', ['value', 'defaulted'])

EXPORT_COLUMNS = [STATEMENT_SOURCE_KEY] + ENCORE_STANDARD_FIELDS + [ROW_INDEX_KEY]

_NUMBER_RE = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?')
_WS_RE = re.compile(r'\s+')
_DATE_SPLIT_RE = re.compile(r'[/\-.]')
_QUARTER_STARTS = {'1': '01-01', '2': '04-01', '3': '07-01', '4': '10-01'}

_MISSING = object()

HIGH_AMOUNT = 1_000_000
OUTLIER_FACTOR = 50


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------

def _is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        pass
    return str(value).strip() == ''


def _as_text(value) -> str:
    # Excel hands integral numbers back as floats (20231.0)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _leading_float(text: str) -> Optional[float]:
    """Parse the longest numeric prefix of text, or None."""
    m = _NUMBER_RE.match(text.strip())
    if not m:
        return None
    return float(m.group(0))


def parse_amount(value) -> ParsedValue:
    """Strip currency symbols and thousands separators; 0 on failure."""
    text = _as_text(value)
    for ch in lexicon.CURRENCY_CHARS:
        text = text.replace(ch, '')
    num = _leading_float(text)
    if num is None:
        return ParsedValue(0.0, True)
    return ParsedValue(num, False)


def parse_decimal(value) -> ParsedValue:
    """Percentages and quantities: strip '%', 0 on failure."""
    num = _leading_float(_as_text(value).replace('%', ''))
    if num is None:
        return ParsedValue(0.0, True)
    return ParsedValue(num, False)


def parse_bmi_quarter(value) -> ParsedValue:
    """BMI period 'YYYYQ' -> quarter-start ISO date. Invalid input gives None."""
    text = _as_text(value)
    year, quarter = text[:4], text[-1:]
    if len(text) < 5 or not year.isdigit() or quarter not in _QUARTER_STARTS:
        log.warning("Invalid BMI period %r (expected YYYYQ with Q in 1-4)", text)
        return ParsedValue(None, True)
    return ParsedValue(f'{year}-{_QUARTER_STARTS[quarter]}', False)


def normalize_date(value) -> ParsedValue:
    """Generic date parse, then MM/DD/YYYY style triplets, else the original string."""
    if isinstance(value, (datetime, date)):
        return ParsedValue(value.strftime('%Y-%m-%d'), False)

    text = _as_text(value)
    try:
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            ts = pd.to_datetime(text, errors='coerce')
    except (ValueError, TypeError, OverflowError):
        ts = pd.NaT
    if not pd.isna(ts):
        return ParsedValue(ts.strftime('%Y-%m-%d'), False)

    parts = _DATE_SPLIT_RE.split(text)
    if len(parts) == 3:
        try:
            dt = date(int(parts[2]), int(parts[0]), int(parts[1]))
            return ParsedValue(f'{dt.year:04d}-{dt.month:02d}-{dt.day:02d}', False)
        except ValueError:
            pass
    return ParsedValue(text, True)


def clean_text(value) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WS_RE.sub(' ', _as_text(value)).strip()


def standardize_media_type(value, source=Source.UNKNOWN) -> str:
    """Map a media/source label onto PERF, MECH, SYNCH, PRINT or OTHER."""
    label = clean_text(value)
    hit = lexicon.lookup_media_type(label)
    if hit:
        return hit
    return 'PERF' if resolve_source(source) is Source.BMI else 'OTHER'


def normalize_value(value, canonical: str, source=Source.UNKNOWN) -> ParsedValue:
    """Normalize one raw value according to the canonical field's kind."""
    if _is_blank(value):
        return ParsedValue(None, False)

    src = resolve_source(source)
    if canonical in lexicon.MONETARY_FIELDS:
        return parse_amount(value)
    if canonical in lexicon.DECIMAL_FIELDS:
        return parse_decimal(value)
    if canonical in lexicon.DATE_FIELDS:
        if src is Source.BMI:
            return parse_bmi_quarter(value)
        return normalize_date(value)
    if canonical in lexicon.TEXT_FIELDS:
        return ParsedValue(clean_text(value), False)
    if canonical in lexicon.IDENTIFIER_FIELDS:
        return ParsedValue(_as_text(value), False)
    if canonical in lexicon.MEDIA_FIELDS:
        return ParsedValue(standardize_media_type(value, src), False)
    return ParsedValue(_as_text(value), False)


# ---------------------------------------------------------------------------
# Mapping configuration
# ---------------------------------------------------------------------------

def _entry_columns(entry) -> List[str]:
    """Column names referenced by a mapping entry (single value or fallback list)."""
    if not entry:
        return []
    if isinstance(entry, (list, tuple)):
        return [str(c) for c in entry if c]
    return [str(entry)]


def _copy_entry(entry):
    if isinstance(entry, (list, tuple)):
        return [str(c) for c in entry]
    return '' if entry is None else str(entry)


def _clean_overrides(overrides: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not overrides:
        return {}
    return {str(k).strip(): _copy_entry(v) for k, v in overrides.items() if str(k).strip()}


def source_key(detected_source) -> str:
    """Key used for the custom-mapping layer: canonical label for known sources."""
    src = resolve_source(detected_source)
    if src is not Source.UNKNOWN:
        return src.value
    return str(detected_source or '').strip()


@dataclass(frozen=True)
class MappingConfig:
    """Persisted per-source custom mappings. Updates return a new config."""
    custom: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        copied = {source_key(src): _clean_overrides(rules)
                  for src, rules in (self.custom or {}).items()}
        object.__setattr__(self, 'custom', copied)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> 'MappingConfig':
        """Build from stored rows shaped like {source_name, mapping_rules}."""
        custom: Dict[str, Dict[str, Any]] = {}
        for row in rows or []:
            name = row.get('source_name')
            rules = row.get('mapping_rules') or {}
            if name and isinstance(rules, Mapping):
                custom.setdefault(source_key(name), {}).update(rules)
        return cls(custom=custom)

    def for_source(self, detected_source) -> Dict[str, Any]:
        rules = self.custom.get(source_key(detected_source), {})
        return {k: _copy_entry(v) for k, v in rules.items()}

    def merged(self, detected_source, overrides: Mapping[str, Any]) -> 'MappingConfig':
        key = source_key(detected_source)
        per_source = dict(self.custom.get(key, {}))
        per_source.update(_clean_overrides(overrides))
        custom = dict(self.custom)
        custom[key] = per_source
        return MappingConfig(custom=custom)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class MappingResult:
    """Output of EncoreMapper.map_data. Unpacks as (mapped_data, unmapped_fields, validation_errors)."""
    mapped_data: List[Dict[str, Any]] = field(default_factory=list)
    unmapped_fields: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __iter__(self):
        return iter((self.mapped_data, self.unmapped_fields, self.validation_errors))

    @property
    def has_errors(self) -> bool:
        return len(self.validation_errors) > 0

    @property
    def error_count(self) -> int:
        return len(self.validation_errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> dict:
        return {
            'mappedData': self.mapped_data,
            'unmappedFields': self.unmapped_fields,
            'validationErrors': self.validation_errors,
            'warnings': self.warnings,
        }


# ---------------------------------------------------------------------------
# Mapper
# ---------------------------------------------------------------------------

def find_unmapped_fields(headers: Iterable[str], effective: Mapping[str, Any],
                         user_field_mappings: Optional[Mapping[str, Any]] = None) -> List[str]:
    """Headers referenced by no effective mapping entry and no user mapping target."""
    referenced = set()
    for entry in effective.values():
        referenced.update(_entry_columns(entry))
    for entry in (user_field_mappings or {}).values():
        referenced.update(_entry_columns(entry))

    unmapped = []
    seen = set()
    for header in headers:
        if header in referenced or header in seen:
            continue
        seen.add(header)
        unmapped.append(header)
    return unmapped


def _extract(row: Mapping[str, Any], entry):
    """Pull the raw value for one mapping entry. Lists fall back in order; no merging."""
    if isinstance(entry, (list, tuple)):
        for col in entry:
            if col in row and not _is_blank(row[col]):
                return row[col]
        return _MISSING
    if entry and entry in row:
        return row[entry]
    return _MISSING


def detect_source(headers: Iterable[str]) -> str:
    """Guess the revenue source from column headers. Returns '' when unsure."""
    cols = {str(h).strip() for h in headers if str(h).strip()}
    best = Source.UNKNOWN
    best_score = 0
    for src in KNOWN_SOURCES:
        candidates = set()
        for per_source in DEFAULT_MAPPING.values():
            candidates.update(_entry_columns(per_source.get(src)))
        score = len(cols & candidates)
        # Source-specific marker columns outweigh shared names like 'Title'
        score += 5 * len(cols & set(SOURCE_MARKERS.get(src, ())))
        if score > best_score:
            best, best_score = src, score
    if best_score < 2:
        return ''
    log.debug("Detected source %s (score %d)", best.value, best_score)
    return best.value


class EncoreMapper:
    """Maps raw statement rows from one revenue source onto canonical royalty records.

    Mapping layers, later ones win:
        1. DEFAULT_MAPPING (built in, per source)
        2. custom mappings (saved per source, held in a MappingConfig)
        3. user field mappings passed to a single map_data call
    """

    def __init__(self, custom_mappings=None):
        if isinstance(custom_mappings, MappingConfig):
            self.config = custom_mappings
        else:
            self.config = MappingConfig(custom=custom_mappings or {})

    # -- configuration ------------------------------------------------------

    def get_effective_mapping(self, detected_source,
                              user_field_mappings: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Three-layer resolution for one source: {canonical_field: column or [columns]}."""
        src = resolve_source(detected_source)
        effective: Dict[str, Any] = {}
        if src is not Source.UNKNOWN:
            for canonical, per_source in DEFAULT_MAPPING.items():
                entry = per_source.get(src)
                if entry:
                    effective[canonical] = _copy_entry(entry)
        effective.update(self.config.for_source(detected_source))
        effective.update(_clean_overrides(user_field_mappings))
        return effective

    def save_mapping(self, detected_source, user_field_mappings: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge overrides into the custom layer for a source; returns the merged map."""
        self.config = self.config.merged(detected_source, user_field_mappings)
        merged = self.config.for_source(detected_source)
        log.info("Saved custom mapping for %s (%d fields)", source_key(detected_source), len(merged))
        return merged

    def with_mapping(self, detected_source, user_field_mappings: Mapping[str, Any]) -> 'EncoreMapper':
        """Like save_mapping but returns a new mapper and leaves this one untouched."""
        return EncoreMapper(self.config.merged(detected_source, user_field_mappings))

    # -- mapping ------------------------------------------------------------

    def map_data(self, source_rows: Iterable[Mapping[str, Any]], detected_source,
                 user_field_mappings: Optional[Mapping[str, Any]] = None) -> MappingResult:
        """Map a batch of raw rows from a single source.

        Returns a MappingResult; problems land in validation_errors / warnings.
        """
        result = MappingResult()
        rows = list(source_rows or [])
        if not rows:
            result.validation_errors.append('No data rows found in the statement')
            return result

        src = resolve_source(detected_source)
        statement_source = str(detected_source or '').strip()
        user = _clean_overrides(user_field_mappings)
        effective = self.get_effective_mapping(detected_source, user)

        headers = list(rows[0].keys())
        result.unmapped_fields = find_unmapped_fields(headers, effective, user)
        self._check_structure(rows, headers, effective, result)

        for idx, row in enumerate(rows):
            record: Dict[str, Any] = {STATEMENT_SOURCE_KEY: statement_source}
            # BMI statements carry no media-type column
            if src is Source.BMI:
                record['MEDIA TYPE'] = 'PERF'

            for canonical in ENCORE_STANDARD_FIELDS:
                entry = effective.get(canonical)
                if not entry:
                    continue
                raw = _extract(row, entry)
                if raw is _MISSING:
                    continue
                parsed = normalize_value(raw, canonical, src)
                if parsed.defaulted:
                    result.warnings.append(
                        f"Row {idx + 1}: Could not parse {canonical} value {_as_text(raw)!r}; "
                        f"using {parsed.value!r}")
                record[canonical] = parsed.value

            if src is Source.BMI:
                record['MEDIA TYPE'] = 'PERF'

            record[ROW_INDEX_KEY] = idx
            self._validate_row(record, idx, result)
            result.mapped_data.append(record)

        self._validate_aggregate(result.mapped_data, result)

        if result.validation_errors:
            log.info("Mapped %d %s rows with %d validation errors",
                     len(rows), statement_source or 'unknown-source', len(result.validation_errors))
        return result

    def map_dataframe(self, df: pd.DataFrame, detected_source,
                      user_field_mappings: Optional[Mapping[str, Any]] = None):
        """map_data over a DataFrame. Returns (canonical DataFrame, MappingResult)."""
        clean = df.astype(object).where(df.notna(), None)
        rows = clean.to_dict('records')
        result = self.map_data(rows, detected_source, user_field_mappings)
        out = pd.DataFrame(result.mapped_data, columns=EXPORT_COLUMNS)
        return out, result

    # -- checks -------------------------------------------------------------

    @staticmethod
    def _check_structure(rows, headers, effective, result: MappingResult):
        empty_headers = [h for h in headers if not str(h).strip()]
        if empty_headers:
            result.warnings.append(f'{len(empty_headers)} empty column headers found')

        expected = len(headers)
        inconsistent = [i + 1 for i, row in enumerate(rows) if len(row) != expected]
        if inconsistent:
            more = ' and more' if len(inconsistent) > 5 else ''
            result.warnings.append(
                f"Inconsistent column count in rows: {', '.join(str(n) for n in inconsistent[:5])}{more}")

        unknown = [k for k in effective if k not in ENCORE_STANDARD_FIELDS]
        for k in unknown:
            result.warnings.append(f"Mapping target '{k}' is not a canonical field and was ignored")

    @staticmethod
    def _validate_row(record: Dict[str, Any], idx: int, result: MappingResult):
        row_num = idx + 1
        for name in REQUIRED_FIELDS:
            value = record.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                result.validation_errors.append(f"Row {row_num}: Missing required field '{name}'")

        gross = record.get('GROSS')
        if isinstance(gross, float) and gross < 0:
            result.warnings.append(f'Row {row_num}: Negative amount detected ({gross})')
        if isinstance(gross, float) and gross > HIGH_AMOUNT:
            result.warnings.append(f'Row {row_num}: Unusually high amount detected ({gross}) - please verify')

        share = record.get('SHARE')
        if isinstance(share, float) and (share < 0 or share > 100):
            result.warnings.append(
                f'Row {row_num}: Share percentage ({share}%) outside valid range (0-100%)')

        if all(_is_blank(record.get(name)) for name in ENCORE_STANDARD_FIELDS):
            result.warnings.append(f'Row {row_num}: No valid data found in this row')

    @staticmethod
    def _validate_aggregate(mapped: List[Dict[str, Any]], result: MappingResult):
        """Batch-level checks: duplicates, zero total, outliers, completeness."""
        if not mapped:
            return

        entries: Dict[tuple, List[int]] = {}
        for idx, record in enumerate(mapped):
            key = (record.get('WORK TITLE'), record.get('WORK WRITERS'), record.get('QUARTER'))
            if _is_blank(key[0]):
                continue
            entries.setdefault(key, []).append(idx + 1)
        for (title, _, _), row_nums in entries.items():
            if len(row_nums) > 1:
                result.warnings.append(
                    f"Potential duplicate entries found for \"{title}\" in rows: "
                    f"{', '.join(str(n) for n in row_nums)}")

        amounts = [r['GROSS'] for r in mapped if isinstance(r.get('GROSS'), float)]
        if amounts:
            total = sum(amounts)
            if total == 0:
                result.warnings.append('Total royalty amount is zero - please verify the data')
            avg = total / len(amounts)
            outliers = [a for a in amounts if avg > 0 and a > avg * OUTLIER_FACTOR]
            if outliers:
                result.warnings.append(
                    f'Found {len(outliers)} entries with amounts significantly higher '
                    f'than average - please verify')

        complete = sum(1 for r in mapped
                       if all(not _is_blank(r.get(name)) for name in REQUIRED_FIELDS))
        if complete < len(mapped):
            result.warnings.append(
                f'Only {complete} out of {len(mapped)} rows contain complete data '
                f'- please review the mapping')


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def export_mapped(records: Iterable[Mapping[str, Any]], path: str, fmt: str = 'xlsx'):
    """Write mapped rows to XLSX or CSV in canonical column order."""
    out = pd.DataFrame(list(records)).reindex(columns=EXPORT_COLUMNS)
    if fmt == 'csv':
        out.to_csv(path, index=False)
    else:
        out.to_excel(path, index=False, engine='openpyxl')
