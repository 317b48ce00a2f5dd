"""
Tests for CWR compliance checks.
"""

import os
import sys

sys.path.insert(0, os.path.dirname(__file__))

from cwr import CWRPublisher, CWRRecording, CWRWork, CWRWriter
from cwr_validation import run_cwr_validation, validate_work


def _good_work(**kw):
    work = dict(
        title='Clean Song',
        iswc='T-123456789-0',
        writers=[CWRWriter('Ann Lee', '123456789', 50, 'composer', 'C')],
        publishers=[CWRPublisher('Lee Music', '12345678901', 50, 'original_publisher')],
        recordings=[CWRRecording('USABC2400001', 'Ann', 200, '2024-01-01')],
    )
    work.update(kw)
    return CWRWork(**work)


def _checks(issues):
    return {i.check for i in issues}


class TestValidateWork:
    def test_clean_work_has_no_issues(self):
        assert validate_work(_good_work()) == []

    def test_title_rules(self):
        assert 'title_required' in _checks(validate_work(_good_work(title='  ')))
        assert 'title_length' in _checks(validate_work(_good_work(title='x' * 61)))

    def test_iswc_format(self):
        assert 'iswc_format' in _checks(validate_work(_good_work(iswc='123')))
        assert validate_work(_good_work(iswc='T1234567890')) == []

    def test_writers_required(self):
        issues = validate_work(_good_work(writers=[], publishers=[CWRPublisher('P', None, 100)]))
        assert 'writers_required' in _checks(issues)

    def test_writer_ipi_and_share(self):
        w = CWRWriter('Ann Lee', '12AB', 150, 'composer')
        checks = _checks(validate_work(_good_work(writers=[w])))
        assert 'ipi_format' in checks
        assert 'writer_share' in checks

    def test_unknown_roles_warn(self):
        issues = validate_work(_good_work(
            writers=[CWRWriter('Ann Lee', None, 50, 'drummer')],
            publishers=[CWRPublisher('Lee Music', None, 50, 'friend')],
        ))
        roles = [i for i in issues if i.check in ('writer_role', 'publisher_role')]
        assert len(roles) == 2
        assert all(i.severity == 'warning' for i in roles)

    def test_publisher_name_length(self):
        p = CWRPublisher('P' * 46, None, 50)
        assert 'publisher_name_length' in _checks(validate_work(_good_work(publishers=[p])))

    def test_isrc_format(self):
        r = CWRRecording('not-an-isrc')
        assert 'isrc_format' in _checks(validate_work(_good_work(recordings=[r])))

    def test_ownership_over_is_error(self):
        w = CWRWriter('Ann Lee', None, 80)
        issue = [i for i in validate_work(_good_work(writers=[w])) if i.check == 'ownership_total'][0]
        assert issue.severity == 'error'
        assert '130%' in issue.message

    def test_ownership_under_is_warning(self):
        w = CWRWriter('Ann Lee', None, 25)
        issue = [i for i in validate_work(_good_work(writers=[w])) if i.check == 'ownership_total'][0]
        assert issue.severity == 'warning'

    def test_dict_work(self):
        issues = validate_work({'title': '', 'writers': []}, 3)
        assert {'title_required', 'writers_required'} <= _checks(issues)
        assert all(i.work_index == 3 for i in issues)
        assert issues[0].message.startswith('Work 4:')


class TestRunValidation:
    def test_counts(self):
        result = run_cwr_validation([_good_work(), _good_work(title='', iswc='bad')])
        assert result.total_works == 2
        assert result.error_count == 2
        assert not result.is_valid

    def test_empty_batch_valid(self):
        result = run_cwr_validation([])
        assert result.is_valid
        assert result.to_dict()['issues'] == []
