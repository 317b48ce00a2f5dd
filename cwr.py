"""
CWR Export
Renders works, writers, publishers and recordings into a CWR 2.x fixed-width
transmission (HDR/NWR/SWR/PWR/TER/REC/GRT/TRL).

Record layouts are declared once in LAYOUTS and drive both rendering and
parsing. The encoder is a best-effort renderer: malformed identifiers are
coerced (digit-stripped, padded, truncated), never rejected.
"""

import logging
import re
import unicodedata
from collections import namedtuple
from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

import config

log = logging.getLogger('encore')

CRLF = '\r\n'
WORLDWIDE_TERRITORY = '2136'


# ---------------------------------------------------------------------------
# Record layouts
# ---------------------------------------------------------------------------

# kind 'A': left-aligned, space padded, truncated
# kind 'N': right-aligned, zero padded (blank when no value)
Field = namedtuple('Field', ['name', 'width', 'kind', 'default'], defaults=('A', ''))

LAYOUTS: Dict[str, List[Field]] = {
    'HDR': [
        Field('record_type', 3, 'A', 'HDR'),
        Field('sequence', 8, 'N'),
        Field('cwr_version', 5),
        Field('sender_id', 9),
        Field('sender_type', 2),
        Field('creation_date', 8, 'N'),
        Field('creation_time', 6, 'N'),
        Field('sender_name', 45),
        Field('edi_standard', 45),
        Field('character_set', 5),
        Field('character_set_version', 11),
        Field('filler', 60),
    ],
    'NWR': [
        Field('record_type', 3, 'A', 'NWR'),
        Field('sequence', 8, 'N'),
        Field('work_title', 60),
        Field('iswc', 11),
        Field('language_code', 14, 'A', 'EN'),
        Field('submitter_work_number', 14),
        Field('work_type', 3, 'A', 'ORI'),
        Field('distribution_category', 1, 'A', 'U'),
        Field('recorded_indicator', 1, 'A', 'N'),
        Field('version_type', 3),
        Field('excerpt_type', 3),
        Field('composite_type', 3),
        Field('composite_count', 3),
        Field('printed_edition_date', 8),
        Field('exceptional_clause', 1),
        Field('grand_rights_indicator', 1),
        Field('catalogue_number', 25),
        Field('filler', 60),
    ],
    'SWR': [
        Field('record_type', 3, 'A', 'SWR'),
        Field('sequence', 8, 'N'),
        Field('controlled', 1, 'A', 'N'),
        Field('first_name', 30),
        Field('last_name', 45),
        Field('ipi', 11),
        Field('writer_unknown', 1),
        Field('role', 2, 'A', 'A'),
        Field('work_for_hire', 1),
        Field('share', 5, 'N', 0),
        Field('revision', 3),
        Field('first_recording_refusal', 1),
        Field('filler', 127),
    ],
    'PWR': [
        Field('record_type', 3, 'A', 'PWR'),
        Field('sequence', 8, 'N'),
        Field('name', 45),
        Field('ipi', 11),
        Field('publisher_unknown', 1),
        Field('role', 2, 'A', 'E'),
        Field('tax_id', 60),
        Field('share', 5, 'N', 0),
        Field('agreement_code', 3),
        Field('agreement_type', 2),
        Field('agreement_start', 8),
        Field('agreement_end', 8),
        Field('filler', 64),
    ],
    'TER': [
        Field('record_type', 3, 'A', 'TER'),
        Field('sequence', 8, 'N'),
        Field('inclusion', 1, 'A', 'I'),
        Field('territory_code', 4, 'N', WORLDWIDE_TERRITORY),
    ],
    'REC': [
        Field('record_type', 3, 'A', 'REC'),
        Field('sequence', 8, 'N'),
        Field('isrc', 12),
        Field('artist_name', 60),
        Field('duration', 6, 'N'),
        Field('release_date', 8),
        Field('label', 60),
        Field('catalogue_number', 18),
        Field('media_type', 3),
        Field('filler', 96),
    ],
    'GRT': [
        Field('record_type', 3, 'A', 'GRT'),
        Field('sequence', 8, 'N'),
        Field('group_id', 4, 'N', 1),
        Field('transaction_count', 5, 'N', 0),
        Field('record_count', 8, 'N', 0),
        Field('filler', 60),
    ],
    'TRL': [
        Field('record_type', 3, 'A', 'TRL'),
        Field('sequence', 8, 'N'),
        Field('group_count', 4, 'N', 1),
        Field('transaction_count', 8, 'N', 0),
        Field('record_count', 8, 'N', 0),
        Field('filler', 57),
    ],
}

RECORD_LENGTHS = {rt: sum(f.width for f in layout) for rt, layout in LAYOUTS.items()}

_CONTROL_RE = re.compile(r'[\x00-\x1f\x7f]')
_NON_DIGIT_RE = re.compile(r'\D')


def _to_ascii(text: str) -> str:
    # Output is ASCII; accented letters fold to their base letter, the rest drop
    folded = unicodedata.normalize('NFKD', text).encode('ascii', 'ignore').decode('ascii')
    return _CONTROL_RE.sub(' ', folded)


def fmt_alpha(value, width: int) -> str:
    s = '' if value is None else _to_ascii(str(value))
    return s[:width].ljust(width)


def fmt_numeric(value, width: int) -> str:
    if value is None or str(value).strip() == '':
        return ' ' * width
    digits = _NON_DIGIT_RE.sub('', str(value))
    if len(digits) > width:
        log.warning("Numeric value %r exceeds %d digits; keeping the rightmost digits", value, width)
        digits = digits[-width:]
    return digits.zfill(width)


def render_record(record_type: str, values: Optional[Mapping[str, Any]] = None) -> str:
    """Render one physical record. Unknown value keys are ignored."""
    values = values or {}
    parts = []
    for f in LAYOUTS[record_type]:
        value = values.get(f.name, f.default)
        if f.kind == 'N':
            parts.append(fmt_numeric(value, f.width))
        else:
            parts.append(fmt_alpha(value, f.width))
    return ''.join(parts)


def parse_record(line: str) -> Dict[str, Any]:
    """Split a physical record back into named fields (numeric fields as int or None)."""
    record_type = line[:3]
    layout = LAYOUTS.get(record_type)
    if layout is None:
        raise ValueError(f'Unknown CWR record type: {record_type!r}')
    out: Dict[str, Any] = {}
    pos = 0
    for f in layout:
        raw = line[pos:pos + f.width]
        pos += f.width
        if f.kind == 'N':
            raw = raw.strip()
            out[f.name] = int(raw) if raw.isdigit() else None
        else:
            out[f.name] = raw.rstrip()
    return out


def parse_cwr_file(content: str) -> List[Dict[str, Any]]:
    """Parse every non-empty line of a transmission."""
    return [parse_record(line) for line in content.splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# Field encodings
# ---------------------------------------------------------------------------

WRITER_ROLE_CODES = {
    'composer': 'CA',
    'composer_author': 'CA',
    'composer/lyricist': 'CA',
    'lyricist': 'A',
    'author': 'A',
    'arranger': 'AR',
    'translator': 'TR',
    'adapter': 'AD',
}

PUBLISHER_ROLE_CODES = {
    'original_publisher': 'E',
    'sub_publisher': 'ES',
    'administrator': 'PA',
    'co_publisher': 'SE',
}

WRITER_CODES = {'CA', 'A', 'C', 'AR', 'TR', 'AD'}
PUBLISHER_CODES = {'E', 'ES', 'PA', 'SE'}


def writer_role_code(role) -> str:
    key = str(role or '').strip()
    if key.upper() in WRITER_CODES:
        return key.upper()
    return WRITER_ROLE_CODES.get(key.lower(), 'A')


def publisher_role_code(role) -> str:
    key = str(role or '').strip()
    if key.upper() in PUBLISHER_CODES:
        return key.upper()
    return PUBLISHER_ROLE_CODES.get(key.lower(), 'E')


def encode_share(percentage) -> int:
    """Percentage -> integer hundredths, rounding half up (33.33 -> 3333)."""
    try:
        hundredths = (Decimal(str(percentage)) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        return 0
    if hundredths.is_nan() or hundredths < 0:
        return 0
    return int(hundredths)


def format_ipi(ipi) -> str:
    """Digits only, zero padded to 11. Missing IPI stays blank."""
    if ipi is None or str(ipi).strip() == '':
        return ''
    digits = _NON_DIGIT_RE.sub('', str(ipi))
    return digits.zfill(11)[-11:]


def split_writer_name(name) -> tuple:
    """Split on the first space: ('Mary Ann Smith') -> ('Mary', 'Ann Smith')."""
    text = ' '.join(str(name or '').split())
    first, _, last = text.partition(' ')
    return first, last


def _strip_dashes(value) -> str:
    return str(value or '').replace('-', '').strip()


def _duration_seconds(duration) -> Optional[int]:
    if duration is None or str(duration).strip() == '':
        return None
    try:
        return max(0, int(round(float(duration))))
    except (TypeError, ValueError, OverflowError):
        return None


def _release_date(value) -> str:
    if isinstance(value, (datetime, date)):
        return value.strftime('%Y%m%d')
    return _strip_dashes(value)[:8]


# ---------------------------------------------------------------------------
# Territories
# ---------------------------------------------------------------------------

TERRITORY_CODES = {
    'WORLD': WORLDWIDE_TERRITORY,
    'US': '840',
    'CA': '124',
    'GB': '826',
    'FR': '250',
    'DE': '276',
    'JP': '392',
    'AU': '036',
}


def get_cwr_territory_code(code) -> str:
    """UI territory code -> CWR TIS code; unknown codes fall back to worldwide."""
    return TERRITORY_CODES.get(str(code or '').strip().upper(), WORLDWIDE_TERRITORY)


def transform_territories_to_cwr(territories) -> List[str]:
    if not territories:
        return [WORLDWIDE_TERRITORY]
    return [get_cwr_territory_code(t) for t in territories]


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

def _pick(data: Mapping[str, Any], cls) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class CWRWriter:
    name: str
    ipi: Optional[str] = None
    ownership_percentage: float = 0.0
    role: str = ''
    controlled_status: str = ''

    @classmethod
    def from_dict(cls, data) -> 'CWRWriter':
        if isinstance(data, cls):
            return data
        kwargs = _pick(data, cls)
        kwargs['name'] = data.get('name') or ''
        return cls(**kwargs)


@dataclass
class CWRPublisher:
    name: str
    ipi: Optional[str] = None
    ownership_percentage: float = 0.0
    role: str = ''

    @classmethod
    def from_dict(cls, data) -> 'CWRPublisher':
        if isinstance(data, cls):
            return data
        kwargs = _pick(data, cls)
        kwargs['name'] = data.get('name') or ''
        return cls(**kwargs)


@dataclass
class CWRRecording:
    isrc: Optional[str] = None
    artist_name: Optional[str] = None
    duration: Optional[int] = None      # seconds
    release_date: Optional[str] = None  # YYYY-MM-DD

    @classmethod
    def from_dict(cls, data) -> 'CWRRecording':
        if isinstance(data, cls):
            return data
        return cls(**_pick(data, cls))


@dataclass
class CWRWork:
    title: str
    iswc: Optional[str] = None
    writers: List[CWRWriter] = field(default_factory=list)
    publishers: List[CWRPublisher] = field(default_factory=list)
    recordings: List[CWRRecording] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data) -> 'CWRWork':
        if isinstance(data, cls):
            return data
        return cls(
            title=data.get('title') or '',
            iswc=data.get('iswc'),
            writers=[CWRWriter.from_dict(w) for w in data.get('writers') or []],
            publishers=[CWRPublisher.from_dict(p) for p in data.get('publishers') or []],
            recordings=[CWRRecording.from_dict(r) for r in data.get('recordings') or []],
        )


def works_from_copyrights(rows) -> List[CWRWork]:
    """Build works from stored copyright rows with nested writer/publisher/recording rows."""
    works = []
    for c in rows or []:
        works.append(CWRWork(
            title=c.get('work_title') or '',
            iswc=c.get('iswc'),
            writers=[CWRWriter(
                name=w.get('writer_name') or '',
                ipi=w.get('ipi_number'),
                ownership_percentage=w.get('ownership_percentage') or 0,
                role=w.get('writer_role') or '',
                controlled_status=w.get('controlled_status') or '',
            ) for w in c.get('copyright_writers') or []],
            publishers=[CWRPublisher(
                name=p.get('publisher_name') or '',
                ipi=p.get('ipi_number'),
                ownership_percentage=p.get('ownership_percentage') or 0,
                role=p.get('publisher_role') or '',
            ) for p in c.get('copyright_publishers') or []],
            recordings=[CWRRecording(
                isrc=r.get('isrc'),
                artist_name=r.get('artist_name'),
                duration=r.get('duration_seconds'),
                release_date=r.get('release_date'),
            ) for r in c.get('copyright_recordings') or []],
        ))
    return works


@dataclass
class HeaderConfig:
    """Transmission header settings. Defaults come from config / environment."""
    sender_id: str = field(default_factory=lambda: config.CWR_SENDER_ID)
    sender_name: str = field(default_factory=lambda: config.CWR_SENDER_NAME)
    sender_type: str = field(default_factory=lambda: config.CWR_SENDER_TYPE)
    cwr_version: str = '02.10'
    edi_standard: str = '01.10'
    character_set: str = 'ASCII'
    character_set_version: str = ''
    creation_datetime: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data) -> 'HeaderConfig':
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        kwargs = _pick(data, cls)
        created = kwargs.get('creation_datetime')
        if isinstance(created, str):
            try:
                kwargs['creation_datetime'] = datetime.fromisoformat(created)
            except ValueError:
                log.warning("Invalid header creation_datetime %r; using current time", created)
                kwargs['creation_datetime'] = None
        return cls(**kwargs)


def _placeholder_work() -> CWRWork:
    return CWRWork(
        title='Sample Musical Work',
        writers=[CWRWriter(name='Sample Writer', ownership_percentage=50.0,
                           role='composer', controlled_status='C')],
        publishers=[CWRPublisher(name='Sample Publishing', ownership_percentage=50.0,
                                 role='original_publisher')],
    )


# ---------------------------------------------------------------------------
# Transmission
# ---------------------------------------------------------------------------

class _RecordWriter:
    """Appends records and stamps each with the running sequence number."""

    def __init__(self):
        self.lines: List[str] = []
        self.sequence = 1

    def emit(self, record_type: str, **values):
        values['sequence'] = self.sequence
        self.lines.append(render_record(record_type, values))
        self.sequence += 1


def generate_cwr_file(works, header_config=None) -> str:
    """Render works into a CWR transmission (CRLF-joined, no trailing newline).

    Works are processed in input order. An empty list is replaced by a single
    placeholder work so the output is always a structurally valid transmission.
    """
    header = HeaderConfig.from_dict(header_config)
    items = [CWRWork.from_dict(w) for w in works or []]
    if not items:
        log.info("No works supplied; emitting placeholder CWR transmission")
        items = [_placeholder_work()]

    created = header.creation_datetime or datetime.now()
    out = _RecordWriter()
    out.emit(
        'HDR',
        cwr_version=header.cwr_version,
        sender_id=header.sender_id,
        sender_type=header.sender_type,
        creation_date=created.strftime('%Y%m%d'),
        creation_time=created.strftime('%H%M%S'),
        sender_name=header.sender_name,
        edi_standard=header.edi_standard,
        character_set=header.character_set,
        character_set_version=header.character_set_version,
    )

    transactions = 0
    for idx, work in enumerate(items):
        out.emit(
            'NWR',
            work_title=work.title,
            iswc=_strip_dashes(work.iswc),
            submitter_work_number=f'ENC{idx + 1:011d}',
            recorded_indicator='Y' if work.recordings else 'N',
        )
        for writer in work.writers:
            first, last = split_writer_name(writer.name)
            out.emit(
                'SWR',
                controlled='Y' if writer.controlled_status == 'C' else 'N',
                first_name=first,
                last_name=last,
                ipi=format_ipi(writer.ipi),
                role=writer_role_code(writer.role),
                share=encode_share(writer.ownership_percentage),
            )
        for publisher in work.publishers:
            out.emit(
                'PWR',
                name=publisher.name,
                ipi=format_ipi(publisher.ipi),
                role=publisher_role_code(publisher.role),
                share=encode_share(publisher.ownership_percentage),
            )
        out.emit('TER', inclusion='I', territory_code=WORLDWIDE_TERRITORY)
        for recording in work.recordings:
            out.emit(
                'REC',
                isrc=_strip_dashes(recording.isrc),
                artist_name=recording.artist_name,
                duration=_duration_seconds(recording.duration),
                release_date=_release_date(recording.release_date),
            )
        transactions += 1

    # GRT counts the records between HDR and itself
    out.emit('GRT', transaction_count=transactions, record_count=out.sequence - 2)
    # TRL counts every physical record, itself included
    out.emit('TRL', transaction_count=transactions, record_count=out.sequence)

    log.info("Generated CWR transmission: %d works, %d records", transactions, len(out.lines))
    return CRLF.join(out.lines)


def cwr_filename(day: Optional[date] = None) -> str:
    day = day or date.today()
    return f'export_{day.isoformat()}.cwr'
