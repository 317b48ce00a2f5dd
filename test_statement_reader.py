"""
Tests for statement file reading:
  - CSV encoding sniffing and header-row detection below banner rows
  - Excel sheet selection
  - end-to-end read -> map
"""

import os
import sys

import openpyxl
import pytest

sys.path.insert(0, os.path.dirname(__file__))

from mapper import EncoreMapper, detect_source
from statement_reader import _pick_best_sheet, _sniff_csv_encoding, detect_header_row, read_statement_rows


# ---------------------------------------------------------------------------
# Helpers: create test statement files
# ---------------------------------------------------------------------------

def _make_bmi_workbook(path, banner=True, extra_sheets=()):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = 'Royalty Detail'
    for name in extra_sheets:
        wb.create_sheet(name, 0)
    if banner:
        ws.append(['BMI Royalty Statement'])
        ws.append(['Publisher: Encore Music'])
        ws.append([])
    ws.append(['Period', 'BMI Work #', 'Work Title', 'Interested Parties (IP Names)',
               'Share %', 'Current Quarter Royalties'])
    ws.append([20231, 111, 'First Song', 'Jane Doe', 50, 12.5])
    ws.append([20232, 222, 'Second Song', 'John Roe', 100, 3])
    ws.append([None, None, None, None, None, None])
    wb.save(path)


class TestHeaderDetection:
    def test_banner_rows_skipped(self):
        grid = [
            ['Quarterly Statement', '', ''],
            ['', '', ''],
            ['Work Title', 'Amount', 'Share %'],
            ['Song', '1.00', '50'],
        ]
        assert detect_header_row(grid) == 2

    def test_first_row_header(self):
        assert detect_header_row([['Title', 'Amount'], ['x', '1']]) == 0

    def test_pick_best_sheet(self):
        assert _pick_best_sheet(['Summary', 'Royalty Detail']) == 'Royalty Detail'
        assert _pick_best_sheet(['Cover', 'Sheet2']) == 'Sheet2'
        assert _pick_best_sheet(['Summary']) == 'Summary'


class TestReadCsv:
    def test_latin1_csv(self, tmp_path):
        path = tmp_path / 'stmt.csv'
        path.write_bytes('Work Title,Amount\nCaf\xe9 Song,1.50\n'.encode('latin-1'))
        assert _sniff_csv_encoding(str(path)) == 'latin-1'
        parsed = read_statement_rows(str(path))
        assert parsed['rows'] == [{'Work Title': 'Caf\xe9 Song', 'Amount': '1.50'}]
        assert parsed['sheets'] is None

    def test_utf8_bom_csv(self, tmp_path):
        path = tmp_path / 'stmt.csv'
        path.write_bytes('\ufeffWork Title,Amount\nSong,2\n'.encode('utf-8'))
        assert _sniff_csv_encoding(str(path)) == 'utf-8-sig'
        assert read_statement_rows(str(path))['headers'] == ['Work Title', 'Amount']

    def test_duplicate_and_blank_headers(self, tmp_path):
        path = tmp_path / 'stmt.csv'
        path.write_text('Title,Title,\nA,B,C\n', encoding='utf-8')
        assert read_statement_rows(str(path))['headers'] == ['Title', 'Title.1', 'Column 3']

    def test_short_rows_padded(self, tmp_path):
        path = tmp_path / 'stmt.csv'
        path.write_text('Title,Amount\nOnly Title\n', encoding='utf-8')
        assert read_statement_rows(str(path))['rows'] == [{'Title': 'Only Title', 'Amount': None}]

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / 'stmt.pdf'
        path.write_bytes(b'%PDF')
        with pytest.raises(ValueError):
            read_statement_rows(str(path))


class TestReadExcel:
    def test_banner_workbook(self, tmp_path):
        path = str(tmp_path / 'bmi.xlsx')
        _make_bmi_workbook(path, extra_sheets=('Summary',))
        parsed = read_statement_rows(path)
        assert parsed['sheet'] == 'Royalty Detail'
        assert parsed['header_row'] == 3
        assert parsed['headers'][0] == 'Period'
        assert len(parsed['rows']) == 2

    def test_read_then_map(self, tmp_path):
        path = str(tmp_path / 'bmi.xlsx')
        _make_bmi_workbook(path)
        rows = read_statement_rows(path)['rows']
        source = detect_source(rows[0].keys())
        assert source == 'BMI'
        mapped, unmapped, errors = EncoreMapper().map_data(rows, source)
        assert errors == []
        assert unmapped == []
        assert mapped[0]['QUARTER'] == '2023-01-01'
        assert mapped[1]['QUARTER'] == '2023-04-01'
        assert mapped[0]['WORK IDENTIFIER'] == '111'
        assert mapped[0]['GROSS'] == 12.5
        assert mapped[0]['MEDIA TYPE'] == 'PERF'
