"""
Statement Lexicon
Static lookup tables for royalty statement ingestion: canonical field names,
per-source default column mappings, and media-type synonyms.
"""

from enum import Enum
from typing import Dict, List, Union


# ---------------------------------------------------------------------------
# Canonical schema
# ---------------------------------------------------------------------------

ENCORE_STANDARD_FIELDS = [
    'QUARTER', 'SOURCE', 'REVENUE SOURCE', 'WORK IDENTIFIER', 'WORK TITLE',
    'WORK WRITERS', 'SHARE', 'MEDIA TYPE', 'MEDIA SUB-TYPE', 'COUNTRY',
    'QUANTITY', 'GROSS', 'NET', 'ISWC', 'ISRC',
]

REQUIRED_FIELDS = ['WORK TITLE', 'WORK WRITERS', 'GROSS']

STATEMENT_SOURCE_KEY = 'Statement Source'
ROW_INDEX_KEY = '_original_row_index'

# Field kinds drive value normalization
MONETARY_FIELDS = {'GROSS', 'NET'}
DECIMAL_FIELDS = {'SHARE', 'QUANTITY'}
DATE_FIELDS = {'QUARTER'}
TEXT_FIELDS = {'WORK TITLE', 'WORK WRITERS', 'MEDIA SUB-TYPE', 'COUNTRY'}
IDENTIFIER_FIELDS = {'WORK IDENTIFIER', 'ISWC', 'ISRC'}
MEDIA_FIELDS = {'SOURCE', 'REVENUE SOURCE', 'MEDIA TYPE'}

CURRENCY_CHARS = '$€£¥,'


# ---------------------------------------------------------------------------
# Revenue sources
# ---------------------------------------------------------------------------

class Source(str, Enum):
    """Revenue sources with a built-in default mapping."""
    BMI = 'BMI'
    ASCAP = 'ASCAP'
    ASCAP_INTERNATIONAL = 'ASCAP International'
    ASCAP_AUDIOVISUAL = 'ASCAP Audiovisual'
    YOUTUBE = 'YouTube'
    SOUNDEXCHANGE = 'SoundExchange'
    HFA = 'HFA'
    KOBALT = 'Kobalt'
    MLC = 'MLC'
    UNKNOWN = ''


KNOWN_SOURCES = [s for s in Source if s is not Source.UNKNOWN]


def resolve_source(label) -> Source:
    """Map a detected source label onto a Source. Unmatched labels give Source.UNKNOWN."""
    if isinstance(label, Source):
        return label
    text = str(label or '').strip()
    if not text:
        return Source.UNKNOWN
    for src in KNOWN_SOURCES:
        if src.value == text:
            return src
    low = text.lower()
    for src in KNOWN_SOURCES:
        if src.value.lower() == low:
            return src
    return Source.UNKNOWN


# ---------------------------------------------------------------------------
# Default mapping: canonical field -> source -> column name or fallback list
# ---------------------------------------------------------------------------

MappingEntry = Union[str, List[str]]

DEFAULT_MAPPING: Dict[str, Dict[Source, MappingEntry]] = {
    'QUARTER': {
        Source.BMI: ['Period', 'Perf Period'],
        Source.ASCAP: ['Distribution Date', 'Statement Date'],
        Source.ASCAP_INTERNATIONAL: ['Distribution Date', 'Statement Date'],
        Source.ASCAP_AUDIOVISUAL: 'Distribution Date',
        Source.YOUTUBE: ['Reporting Period', 'Revenue Start'],
        Source.SOUNDEXCHANGE: ['Distribution Date', 'Usage Period Start'],
        Source.HFA: ['Period', 'Statement Period'],
        Source.KOBALT: ['Statement Period', 'Period'],
        Source.MLC: ['Usage Period', 'Period'],
    },
    'SOURCE': {
        Source.BMI: ['Perf Source', 'Source'],
        Source.ASCAP: ['Performance Source', 'Source'],
        Source.ASCAP_INTERNATIONAL: ['Society Name', 'Source'],
        Source.ASCAP_AUDIOVISUAL: ['Network', 'Source'],
        Source.YOUTUBE: ['Platform', 'Asset Type'],
        Source.SOUNDEXCHANGE: ['Service', 'Service Name'],
        Source.HFA: ['Licensee', 'Service'],
        Source.KOBALT: ['Source', 'Income Source'],
        Source.MLC: ['DSP', 'Service'],
    },
    'REVENUE SOURCE': {
        Source.BMI: ['Source Code', 'Performance Type'],
        Source.ASCAP: ['Survey', 'Performance Type'],
        Source.ASCAP_INTERNATIONAL: ['Income Type', 'Survey'],
        Source.ASCAP_AUDIOVISUAL: 'Use Type',
        Source.YOUTUBE: ['Revenue Type', 'Content Type'],
        Source.SOUNDEXCHANGE: ['Royalty Type', 'Revenue Type'],
        Source.HFA: ['Usage Type', 'Configuration'],
        Source.KOBALT: ['Income Type', 'Royalty Type'],
        Source.MLC: ['Offering', 'Use Type'],
    },
    'WORK IDENTIFIER': {
        Source.BMI: ['BMI Work #', 'Work ID', 'Title #'],
        Source.ASCAP: ['Work Number', 'Work ID'],
        Source.ASCAP_INTERNATIONAL: ['Work Number', 'Work ID'],
        Source.ASCAP_AUDIOVISUAL: 'Work Number',
        Source.YOUTUBE: ['Asset ID', 'Custom ID'],
        Source.SOUNDEXCHANGE: ['Track ID', 'Recording ID'],
        Source.HFA: ['HFA Song Code', 'Song Code'],
        Source.KOBALT: ['Work ID', 'Kobalt Work ID'],
        Source.MLC: ['MLC Song Code', 'Song Code'],
    },
    'WORK TITLE': {
        Source.BMI: ['Work Title', 'Title Name', 'Title'],
        Source.ASCAP: ['Title', 'Work Title'],
        Source.ASCAP_INTERNATIONAL: ['Title', 'Work Title'],
        Source.ASCAP_AUDIOVISUAL: ['Title', 'Work Title'],
        Source.YOUTUBE: ['Asset Title', 'Video Title'],
        Source.SOUNDEXCHANGE: ['Sound Recording Title', 'Track Title'],
        Source.HFA: ['Song Title', 'Title'],
        Source.KOBALT: ['Work Title', 'Title'],
        Source.MLC: ['Song Title', 'Work Title'],
    },
    'WORK WRITERS': {
        Source.BMI: ['Interested Parties (IP Names)', 'IP Name', 'Participant Name'],
        Source.ASCAP: ['Writer Name', 'Member Name'],
        Source.ASCAP_INTERNATIONAL: ['Writer Name', 'Member Name'],
        Source.ASCAP_AUDIOVISUAL: 'Writer Name',
        Source.YOUTUBE: ['Writers', 'Channel Name'],
        Source.SOUNDEXCHANGE: ['Featured Artist', 'Artist'],
        Source.HFA: ['Writers', 'Composer'],
        Source.KOBALT: ['Writers', 'Composer(s)'],
        Source.MLC: ['Writers', 'Songwriters'],
    },
    'SHARE': {
        Source.BMI: ['Share %', 'Participant %'],
        Source.ASCAP: ['Writer Share', 'Share %'],
        Source.ASCAP_INTERNATIONAL: ['Writer Share', 'Share %'],
        Source.ASCAP_AUDIOVISUAL: 'Writer Share',
        Source.YOUTUBE: ['Ownership %', 'Share'],
        Source.SOUNDEXCHANGE: ['Share Percentage', 'Share'],
        Source.HFA: ['Ownership %', 'Share'],
        Source.KOBALT: ['Share %', 'Share'],
        Source.MLC: ['Share %', 'Ownership Share'],
    },
    'MEDIA TYPE': {
        Source.ASCAP: ['Media Type', 'Type of Use'],
        Source.ASCAP_INTERNATIONAL: ['Media Type', 'Type of Use'],
        Source.ASCAP_AUDIOVISUAL: 'Media Type',
        Source.YOUTUBE: ['Revenue Type', 'Media Type'],
        Source.SOUNDEXCHANGE: ['Royalty Type', 'Media Type'],
        Source.HFA: ['Royalty Type', 'Media Type'],
        Source.KOBALT: ['Right Type', 'Media Type'],
        Source.MLC: ['Royalty Type', 'Media Type'],
    },
    'MEDIA SUB-TYPE': {
        Source.BMI: ['Use Code', 'Usage Type'],
        Source.ASCAP: ['Use Type', 'Usage'],
        Source.ASCAP_INTERNATIONAL: ['Use Type', 'Usage'],
        Source.ASCAP_AUDIOVISUAL: 'Program Type',
        Source.YOUTUBE: ['Content Type', 'Asset Type'],
        Source.SOUNDEXCHANGE: ['Transmission Type', 'Channel'],
        Source.HFA: ['Configuration', 'Product Type'],
        Source.KOBALT: ['Income Sub-Type', 'Sub Type'],
        Source.MLC: ['Use Type', 'Configuration'],
    },
    'COUNTRY': {
        Source.BMI: ['Country', 'Territory'],
        Source.ASCAP: ['Country', 'Territory'],
        Source.ASCAP_INTERNATIONAL: ['Country', 'Territory', 'Society Country'],
        Source.ASCAP_AUDIOVISUAL: 'Country',
        Source.YOUTUBE: ['Country', 'Territory'],
        Source.SOUNDEXCHANGE: ['Territory', 'Country'],
        Source.HFA: ['Territory', 'Country'],
        Source.KOBALT: ['Territory', 'Country'],
        Source.MLC: ['Territory', 'Country'],
    },
    'QUANTITY': {
        Source.BMI: ['Perf Count', 'Performances'],
        Source.ASCAP: ['Credits', 'Performances'],
        Source.ASCAP_INTERNATIONAL: ['Performances', 'Credits'],
        Source.ASCAP_AUDIOVISUAL: 'Episodes',
        Source.YOUTUBE: ['Views', 'Owned Views'],
        Source.SOUNDEXCHANGE: ['Performances', 'Plays'],
        Source.HFA: ['Units', 'Quantity'],
        Source.KOBALT: ['Units', 'Quantity'],
        Source.MLC: ['Streams', 'Units'],
    },
    'GROSS': {
        Source.BMI: ['Current Quarter Royalties', 'Amount Paid', 'Royalty Amount',
                     'Amount', 'Total Amount'],
        Source.ASCAP: ['Dollars', 'Amount Paid', 'Amount', 'Total Amount'],
        Source.ASCAP_INTERNATIONAL: ['Dollars', 'Amount Paid', 'Amount'],
        Source.ASCAP_AUDIOVISUAL: ['Dollars', 'Amount'],
        Source.YOUTUBE: ['Earnings', 'Gross Revenue', 'Partner Revenue'],
        Source.SOUNDEXCHANGE: ['Royalty', 'Gross Amount', 'Amount'],
        Source.HFA: ['Gross Amount', 'Royalty Amount', 'Amount'],
        Source.KOBALT: ['Gross Amount', 'Gross', 'Amount'],
        Source.MLC: ['Gross Royalty', 'Royalty Amount', 'Amount'],
    },
    'NET': {
        Source.BMI: ['Net Amount', 'Net'],
        Source.ASCAP: ['Net Dollars', 'Net Amount'],
        Source.ASCAP_INTERNATIONAL: ['Net Dollars', 'Net Amount'],
        Source.ASCAP_AUDIOVISUAL: 'Net Dollars',
        Source.YOUTUBE: ['Net Revenue', 'Net Earnings'],
        Source.SOUNDEXCHANGE: ['Net Royalty', 'Net Amount'],
        Source.HFA: ['Net Amount', 'Payable Amount'],
        Source.KOBALT: ['Net Amount', 'Net', 'Payable'],
        Source.MLC: ['Net Royalty', 'Net Amount'],
    },
    'ISWC': {
        Source.BMI: 'ISWC',
        Source.ASCAP: 'ISWC',
        Source.ASCAP_INTERNATIONAL: 'ISWC',
        Source.ASCAP_AUDIOVISUAL: 'ISWC',
        Source.HFA: 'ISWC',
        Source.KOBALT: 'ISWC',
        Source.MLC: 'ISWC',
    },
    'ISRC': {
        Source.YOUTUBE: 'ISRC',
        Source.SOUNDEXCHANGE: 'ISRC',
        Source.HFA: 'ISRC',
        Source.KOBALT: 'ISRC',
        Source.MLC: 'ISRC',
    },
}


# Columns only one source is known to emit (used by source detection)
SOURCE_MARKERS: Dict[Source, List[str]] = {
    Source.BMI: ['BMI Work #', 'Current Quarter Royalties', 'Interested Parties (IP Names)'],
    Source.ASCAP_INTERNATIONAL: ['Society Name', 'Society Country'],
    Source.ASCAP_AUDIOVISUAL: ['Network', 'Program Type', 'Episodes'],
    Source.YOUTUBE: ['Asset ID', 'Asset Title', 'Owned Views'],
    Source.SOUNDEXCHANGE: ['Sound Recording Title', 'Featured Artist'],
    Source.HFA: ['HFA Song Code'],
    Source.KOBALT: ['Kobalt Work ID', 'Composer(s)'],
    Source.MLC: ['MLC Song Code', 'DSP'],
}


# ---------------------------------------------------------------------------
# Media-type synonyms -> PERF, MECH, SYNCH, PRINT, OTHER
# ---------------------------------------------------------------------------

MEDIA_TYPES = ('PERF', 'MECH', 'SYNCH', 'PRINT', 'OTHER')

MEDIA_TYPE_MAP = {
    # Performance
    'PERF': 'PERF',
    'Performance': 'PERF',
    'Public Performance': 'PERF',
    'Digital Performance': 'PERF',
    'Streaming - Performance': 'PERF',
    'Performance - Streaming': 'PERF',
    'Non-Interactive Streaming': 'PERF',
    'Webcasting': 'PERF',
    'Terrestrial Radio': 'PERF',
    'Satellite Radio': 'PERF',
    'Radio': 'PERF',
    'Television': 'PERF',
    'TV': 'PERF',
    'Cable TV': 'PERF',
    'Network TV': 'PERF',
    'Live': 'PERF',
    'Live Performance': 'PERF',
    'Concert': 'PERF',
    'Background Music': 'PERF',
    'General Licensing': 'PERF',
    'YouTube': 'PERF',
    'Ad Supported': 'PERF',
    'Neighbouring Rights': 'PERF',
    # Mechanical
    'MECH': 'MECH',
    'Mechanical': 'MECH',
    'Streaming - Mechanical': 'MECH',
    'Streaming Mechanical': 'MECH',
    'Interactive Streaming': 'MECH',
    'On-Demand Streaming': 'MECH',
    'Download Mechanical': 'MECH',
    'Permanent Download': 'MECH',
    'Downloads': 'MECH',
    'Download': 'MECH',
    'Physical': 'MECH',
    'CD': 'MECH',
    'Vinyl': 'MECH',
    'Ringtones': 'MECH',
    'Reproduction': 'MECH',
    'Limited Download': 'MECH',
    # Synchronization
    'SYNCH': 'SYNCH',
    'SYNC': 'SYNCH',
    'Sync': 'SYNCH',
    'Synch': 'SYNCH',
    'Synchronization': 'SYNCH',
    'Synchronisation': 'SYNCH',
    'Film': 'SYNCH',
    'Advertising': 'SYNCH',
    'Commercial': 'SYNCH',
    'Video Game': 'SYNCH',
    'Trailer': 'SYNCH',
    # Print
    'PRINT': 'PRINT',
    'Print': 'PRINT',
    'Sheet Music': 'PRINT',
    'Lyrics': 'PRINT',
    'Lyric Display': 'PRINT',
    'Folio': 'PRINT',
    # Other
    'OTHER': 'OTHER',
    'Other': 'OTHER',
    'Miscellaneous': 'OTHER',
    'Adjustment': 'OTHER',
    'Black Box': 'OTHER',
    'Unknown': 'OTHER',
}

_MEDIA_TYPE_MAP_LOWER = {k.lower(): v for k, v in MEDIA_TYPE_MAP.items()}


def lookup_media_type(label: str):
    """Case-sensitive lookup, then case-insensitive. Returns None when absent."""
    if label in MEDIA_TYPE_MAP:
        return MEDIA_TYPE_MAP[label]
    return _MEDIA_TYPE_MAP_LOWER.get(label.lower())
