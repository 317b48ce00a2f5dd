"""
Tests for the HTTP API:
  - /api/map-statement with JSON rows and file uploads
  - /api/mappings/<source> get/save
  - /api/export-mapped downloads
  - /api/validate-cwr and /api/export-cwr
"""

import io
import logging
import os
import sys
import tempfile

import openpyxl
import pytest

sys.path.insert(0, os.path.dirname(__file__))

import mapping_store
from cwr import RECORD_LENGTHS


@pytest.fixture(scope='module')
def client(tmp_path_factory):
    """Flask test client backed by a throwaway mapping store."""
    import app as app_module
    mapping_store.init_db(str(tmp_path_factory.mktemp('store') / 'mappings.db'))
    app_module.reload_mappings()
    app_module.app.config['TESTING'] = True

    with app_module.app.test_client() as c:
        yield c


BMI_ROW = {
    'Period': '20244',
    'BMI Work #': '555',
    'Work Title': 'Harbor Lights',
    'Interested Parties (IP Names)': 'Jane Doe',
    'Current Quarter Royalties': '$10.00',
}


class TestMapStatement:
    def test_json_rows(self, client):
        r = client.post('/api/map-statement', json={'rows': [BMI_ROW], 'detected_source': 'BMI'})
        assert r.status_code == 200
        body = r.get_json()
        assert body['validationErrors'] == []
        assert body['mappedData'][0]['QUARTER'] == '2024-10-01'
        assert body['mappedData'][0]['MEDIA TYPE'] == 'PERF'

    def test_source_auto_detected(self, client):
        r = client.post('/api/map-statement', json={'rows': [dict(BMI_ROW, Notes='hi')]})
        body = r.get_json()
        assert body['detectedSource'] == 'BMI'
        assert body['unmappedFields'] == ['Notes']

    def test_bad_body(self, client):
        assert client.post('/api/map-statement', json={'rows': 'nope'}).status_code == 400
        assert client.post('/api/map-statement', data='x', content_type='text/plain').status_code == 400

    def test_empty_rows(self, client):
        body = client.post('/api/map-statement', json={'rows': [], 'detected_source': 'BMI'}).get_json()
        assert body['validationErrors'] == ['No data rows found in the statement']

    def test_csv_upload(self, client):
        csv_bytes = b'Period,BMI Work #,Work Title,Interested Parties (IP Names),Current Quarter Royalties\n' \
                    b'20231,1,Song,Jane Doe,5.00\n'
        r = client.post('/api/map-statement',
                        data={'file': (io.BytesIO(csv_bytes), 'bmi.csv')},
                        content_type='multipart/form-data')
        assert r.status_code == 200
        body = r.get_json()
        assert body['detectedSource'] == 'BMI'
        assert body['mappedData'][0]['GROSS'] == 5.0

    def test_xlsx_upload(self, client, tmp_path):
        path = tmp_path / 'yt.xlsx'
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(['Asset ID', 'Asset Title', 'Writers', 'Earnings', 'Owned Views'])
        ws.append(['A1', 'Clip Song', 'Ann Lee', 1.25, 1000])
        wb.save(path)
        with open(path, 'rb') as f:
            r = client.post('/api/map-statement',
                            data={'file': (f, 'yt.xlsx')},
                            content_type='multipart/form-data')
        body = r.get_json()
        assert body['detectedSource'] == 'YouTube'
        assert body['mappedData'][0]['GROSS'] == 1.25
        assert body['validationErrors'] == []

    def test_unsupported_upload(self, client):
        r = client.post('/api/map-statement',
                        data={'file': (io.BytesIO(b'%PDF'), 'stmt.pdf')},
                        content_type='multipart/form-data')
        assert r.status_code == 400


class TestMappings:
    def test_save_then_use(self, client):
        r = client.post('/api/mappings/HFA', json={'mapping_rules': {'GROSS': 'Paid Out'}})
        assert r.status_code == 200
        body = r.get_json()
        assert body['mapping']['GROSS'] == 'Paid Out'
        assert body['persisted'] is True

        got = client.get('/api/mappings/HFA').get_json()
        assert got['mapping']['GROSS'] == 'Paid Out'

        rows = [{'Song Title': 'S', 'Writers': 'W', 'Paid Out': '2.5'}]
        mapped = client.post('/api/map-statement', json={'rows': rows, 'detected_source': 'HFA'}).get_json()
        assert mapped['mappedData'][0]['GROSS'] == 2.5

    def test_saved_mapping_persisted(self, client):
        client.post('/api/mappings/Kobalt', json={'GROSS': 'Kobalt Paid'})
        stored = {r['source_name']: r['mapping_rules'] for r in mapping_store.load_custom_mappings()}
        assert stored['Kobalt'] == {'GROSS': 'Kobalt Paid'}

    def test_empty_mapping_rejected(self, client):
        assert client.post('/api/mappings/BMI', json={}).status_code == 400


class TestCwrEndpoints:
    WORK = {
        'title': 'Harbor Lights',
        'iswc': 'T-123456789-0',
        'writers': [{'name': 'Jane Doe', 'ipi': '123456789', 'ownership_percentage': 50,
                     'role': 'composer', 'controlled_status': 'C'}],
        'publishers': [{'name': 'Doe Music', 'ownership_percentage': 50, 'role': 'original_publisher'}],
    }

    def test_export(self, client):
        r = client.post('/api/export-cwr', json={'works': [self.WORK],
                                                 'header': {'sender_name': 'Test Sender'}})
        assert r.status_code == 200
        assert r.mimetype == 'text/plain'
        disposition = r.headers['Content-Disposition']
        assert 'attachment' in disposition and '.cwr' in disposition
        lines = r.get_data(as_text=True).split('\r\n')
        assert [l[:3] for l in lines] == ['HDR', 'NWR', 'SWR', 'PWR', 'TER', 'GRT', 'TRL']
        assert all(len(l) == RECORD_LENGTHS[l[:3]] for l in lines)
        assert 'Test Sender' in lines[0]

    def test_export_from_copyrights(self, client):
        rows = [{'work_title': 'Stored', 'copyright_writers': [
            {'writer_name': 'Ann Lee', 'ownership_percentage': 100, 'writer_role': 'lyricist'}]}]
        r = client.post('/api/export-cwr', json={'copyrights': rows})
        text = r.get_data(as_text=True)
        assert 'Stored' in text.split('\r\n')[1]

    def test_export_empty_is_placeholder(self, client):
        text = client.post('/api/export-cwr', json={}).get_data(as_text=True)
        assert 'Sample Musical Work' in text

    def test_export_bad_payload(self, client):
        r = client.post('/api/export-cwr', json={'works': ['not a work']})
        assert r.status_code == 400

    def test_validate(self, client):
        bad = dict(self.WORK, iswc='nope')
        body = client.post('/api/validate-cwr', json={'works': [self.WORK, bad]}).get_json()
        assert body['totalWorks'] == 2
        assert body['errorCount'] == 1
        assert body['issues'][0]['workIndex'] == 1


class TestExportMapped:
    RECORDS = [{'Statement Source': 'BMI', 'WORK TITLE': 'Harbor Lights',
                'WORK WRITERS': 'Jane Doe', 'GROSS': 10.0}]

    def test_csv_download_leaves_no_temp_files(self, client, tmp_path, monkeypatch):
        monkeypatch.setattr(tempfile, 'tempdir', str(tmp_path))
        r = client.post('/api/export-mapped', json={'records': self.RECORDS, 'format': 'csv'})
        assert r.status_code == 200
        disposition = r.headers['Content-Disposition']
        assert 'attachment' in disposition and '.csv' in disposition
        body = r.get_data(as_text=True)
        assert body.splitlines()[0].startswith('Statement Source')
        assert 'Harbor Lights' in body
        assert os.listdir(tmp_path) == []

    def test_xlsx_download(self, client, tmp_path, monkeypatch):
        monkeypatch.setattr(tempfile, 'tempdir', str(tmp_path))
        r = client.post('/api/export-mapped', json={'records': self.RECORDS})
        assert r.status_code == 200
        wb = openpyxl.load_workbook(io.BytesIO(r.get_data()))
        header = [c.value for c in next(wb.active.iter_rows(max_row=1))]
        assert header[0] == 'Statement Source'
        assert os.listdir(tmp_path) == []

    def test_bad_format(self, client):
        r = client.post('/api/export-mapped', json={'records': [], 'format': 'pdf'})
        assert r.status_code == 400


class TestLogging:
    def test_unwritable_log_file_reported(self, tmp_path):
        import app as app_module
        handler, err = app_module._open_log_file(str(tmp_path / 'missing' / 'encore.log'))
        assert handler is None
        assert isinstance(err, OSError)

    def test_log_file_opened(self, tmp_path):
        import app as app_module
        handler, err = app_module._open_log_file(str(tmp_path / 'encore.log'))
        assert err is None
        assert isinstance(handler, logging.FileHandler)
        handler.close()
