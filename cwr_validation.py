"""
CWR Compliance Checks
Pre-flight checks on works before they are rendered to CWR: title length,
ISWC/IPI/ISRC formats, writer and publisher roles, and ownership totals.
Nothing here blocks an export; the encoder coerces whatever it is given.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from cwr import CWRWork, PUBLISHER_CODES, WRITER_CODES, PUBLISHER_ROLE_CODES, WRITER_ROLE_CODES

ISWC_RE = re.compile(r'^T-?\d{9}-?\d$')
IPI_RE = re.compile(r'^\d{9,11}$')
ISRC_RE = re.compile(r'^[A-Z]{2}[A-Z0-9]{3}\d{7}$')

MAX_TITLE_LENGTH = 60
MAX_PUBLISHER_NAME_LENGTH = 45


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class CWRIssue:
    """A single compliance issue on one work."""
    check: str              # e.g. 'iswc_format', 'ownership_total'
    severity: str           # 'error' or 'warning'
    message: str
    work_index: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            'check': self.check,
            'severity': self.severity,
            'message': self.message,
            'workIndex': self.work_index,
        }


@dataclass
class CWRValidationResult:
    issues: List[CWRIssue] = field(default_factory=list)
    total_works: int = 0

    @property
    def is_valid(self) -> bool:
        return self.error_count == 0

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == 'error')

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == 'warning')

    def to_dict(self) -> dict:
        return {
            'isValid': self.is_valid,
            'totalWorks': self.total_works,
            'errorCount': self.error_count,
            'warningCount': self.warning_count,
            'issues': [i.to_dict() for i in self.issues],
        }


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def _known_role(role, codes, names) -> bool:
    key = str(role or '').strip()
    return key.upper() in codes or key.lower() in names


def _as_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def validate_work(work, index: int = 0) -> List[CWRIssue]:
    """All compliance checks for one work (dict or CWRWork)."""
    work = CWRWork.from_dict(work)
    issues: List[CWRIssue] = []
    label = f'Work {index + 1}'

    def add(check, severity, message):
        issues.append(CWRIssue(check, severity, f'{label}: {message}', index))

    title = (work.title or '').strip()
    if not title:
        add('title_required', 'error', 'Work title is required')
    elif len(title) > MAX_TITLE_LENGTH:
        add('title_length', 'error', f'Work title exceeds {MAX_TITLE_LENGTH} characters')

    if work.iswc and not ISWC_RE.match(str(work.iswc).strip()):
        add('iswc_format', 'error', f"ISWC '{work.iswc}' must look like T-123456789-0")

    if not work.writers:
        add('writers_required', 'error', 'At least one writer is required')

    writer_total = 0.0
    for n, writer in enumerate(work.writers, start=1):
        if not (writer.name or '').strip():
            add('writer_name', 'error', f'Writer {n} name is required')
        share = _as_float(writer.ownership_percentage)
        if share < 0 or share > 100:
            add('writer_share', 'error', f'Writer {n} share {share:g}% must be between 0 and 100')
        writer_total += share
        if writer.ipi and not IPI_RE.match(str(writer.ipi).strip()):
            add('ipi_format', 'error', f"Writer {n} IPI '{writer.ipi}' must be 9-11 digits")
        if writer.role and not _known_role(writer.role, WRITER_CODES, WRITER_ROLE_CODES):
            add('writer_role', 'warning', f"Writer {n} role '{writer.role}' is not a CWR writer designation")

    publisher_total = 0.0
    for n, publisher in enumerate(work.publishers, start=1):
        if len((publisher.name or '').strip()) > MAX_PUBLISHER_NAME_LENGTH:
            add('publisher_name_length', 'error',
                f'Publisher {n} name exceeds {MAX_PUBLISHER_NAME_LENGTH} characters')
        if publisher.ipi and not IPI_RE.match(str(publisher.ipi).strip()):
            add('ipi_format', 'error', f"Publisher {n} IPI '{publisher.ipi}' must be 9-11 digits")
        if publisher.role and not _known_role(publisher.role, PUBLISHER_CODES, PUBLISHER_ROLE_CODES):
            add('publisher_role', 'warning', f"Publisher {n} role '{publisher.role}' is not a CWR publisher type")
        publisher_total += _as_float(publisher.ownership_percentage)

    for n, recording in enumerate(work.recordings, start=1):
        if recording.isrc and not ISRC_RE.match(str(recording.isrc).replace('-', '').strip()):
            add('isrc_format', 'error', f"Recording {n} ISRC '{recording.isrc}' is malformed")

    if work.writers or work.publishers:
        total = round(writer_total + publisher_total, 4)
        if total > 100:
            add('ownership_total', 'error', f'Total ownership {total:g}% exceeds 100%')
        elif total < 100:
            add('ownership_total', 'warning', f'Total ownership {total:g}% is below 100%')

    return issues


def run_cwr_validation(works) -> CWRValidationResult:
    """Run every check across a batch of works."""
    result = CWRValidationResult(total_works=len(works or []))
    for idx, work in enumerate(works or []):
        result.issues.extend(validate_work(work, idx))
    return result
