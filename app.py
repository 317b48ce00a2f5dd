"""
Encore Statement Mapper - HTTP API
Flask endpoints for mapping royalty statements onto the Encore schema,
managing per-source custom mappings, and exporting works as CWR.
"""

import io
import logging
import os
import tempfile
from datetime import date

import config

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
def _open_log_file(path):
    """FileHandler for path, or (None, error) when it cannot be opened."""
    try:
        return logging.FileHandler(path, encoding='utf-8'), None
    except OSError as e:
        return None, e


_log_handlers = [logging.StreamHandler()]
_log_file_error = None
if config.LOG_FILE:
    _file_handler, _log_file_error = _open_log_file(config.LOG_FILE)
    if _file_handler is not None:
        _log_handlers.append(_file_handler)
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    handlers=_log_handlers,
)
log = logging.getLogger('encore')
if _log_file_error is not None:
    log.warning("Could not open log file %s (%s); logging to stderr only", config.LOG_FILE, _log_file_error)

from flask import Flask, jsonify, make_response, request, send_file
from werkzeug.utils import secure_filename

import mapping_store
from cwr import cwr_filename, generate_cwr_file, works_from_copyrights
from cwr_validation import run_cwr_validation
from mapper import EncoreMapper, MappingConfig, detect_source, export_mapped, source_key
from statement_reader import read_statement_rows

app = Flask(__name__)
app.secret_key = config.FLASK_SECRET_KEY
app.config['MAX_CONTENT_LENGTH'] = config.MAX_UPLOAD_MB * 1024 * 1024

ALLOWED_EXTENSIONS = {'.csv', '.txt', '.xlsx', '.xlsm', '.xls'}

_mapper = EncoreMapper()


def reload_mappings():
    """Rebuild the shared mapper from whatever the mapping store holds."""
    global _mapper
    _mapper = EncoreMapper(MappingConfig.from_rows(mapping_store.load_custom_mappings()))
    return _mapper


mapping_store.init_db()
reload_mappings()


@app.errorhandler(413)
def _request_too_large(e):
    log.error("413 Request Entity Too Large: %s %s (content-length: %s)",
              request.method, request.path, request.content_length)
    return jsonify(error='File too large',
                   message=f'Upload exceeds the {config.MAX_UPLOAD_MB} MB limit.'), 413


@app.errorhandler(500)
def _internal_error(e):
    log.error("500 Internal Server Error: %s %s: %s", request.method, request.path, e)
    return jsonify(error='Internal server error', message=str(e)), 500


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _works_from_body(data):
    if data.get('copyrights') is not None:
        return works_from_copyrights(data.get('copyrights'))
    return data.get('works') or []


# ---------------------------------------------------------------------------
# Statement mapping
# ---------------------------------------------------------------------------

def _rows_from_upload(upload):
    filename = secure_filename(upload.filename or '')
    ext = os.path.splitext(filename)[1].lower()
    if ext not in ALLOWED_EXTENSIONS:
        return None, f'Unsupported file type: {ext or "(none)"}'
    fd, path = tempfile.mkstemp(suffix=ext)
    os.close(fd)
    try:
        upload.save(path)
        parsed = read_statement_rows(path, sheet=request.form.get('sheet') or None)
    except ValueError as e:
        return None, str(e)
    finally:
        try:
            os.remove(path)
        except OSError:
            pass
    return parsed['rows'], None


@app.route('/api/map-statement', methods=['POST'])
def api_map_statement():
    """Map a statement upload (multipart 'file') or JSON {rows, detected_source, user_field_mappings}."""
    upload = request.files.get('file')
    if upload is not None:
        rows, err = _rows_from_upload(upload)
        if err:
            return jsonify({'error': err}), 400
        detected = request.form.get('detected_source', '')
        user_mappings = None
    else:
        data = _json_body()
        if data is None:
            return jsonify({'error': 'Expected a file upload or a JSON body'}), 400
        rows = data.get('rows')
        if not isinstance(rows, list):
            return jsonify({'error': "'rows' must be a list of objects"}), 400
        detected = data.get('detected_source') or ''
        user_mappings = data.get('user_field_mappings')
        if user_mappings is not None and not isinstance(user_mappings, dict):
            return jsonify({'error': "'user_field_mappings' must be an object"}), 400

    if not detected and rows:
        detected = detect_source(rows[0].keys())
        log.info("Auto-detected statement source: %s", detected or 'unknown')

    result = _mapper.map_data(rows, detected, user_mappings)
    payload = result.to_dict()
    payload['detectedSource'] = detected
    return jsonify(payload)


@app.route('/api/export-mapped', methods=['POST'])
def api_export_mapped():
    """Download mapped records as XLSX or CSV."""
    data = _json_body()
    if data is None or not isinstance(data.get('records'), list):
        return jsonify({'error': "'records' must be a list of objects"}), 400
    fmt = (data.get('format') or 'xlsx').lower()
    if fmt not in ('xlsx', 'csv'):
        return jsonify({'error': f'Unsupported export format: {fmt}'}), 400

    fd, path = tempfile.mkstemp(suffix=f'.{fmt}')
    os.close(fd)
    try:
        export_mapped(data['records'], path, fmt)
        with open(path, 'rb') as f:
            payload = io.BytesIO(f.read())
    finally:
        os.remove(path)
    return send_file(payload, as_attachment=True,
                     download_name=f'mapped_{date.today().isoformat()}.{fmt}')


# ---------------------------------------------------------------------------
# Custom mappings
# ---------------------------------------------------------------------------

@app.route('/api/mappings/<source>', methods=['GET'])
def api_get_mapping(source):
    return jsonify({'source': source, 'mapping': _mapper.get_effective_mapping(source)})


@app.route('/api/mappings/<source>', methods=['POST'])
def api_save_mapping(source):
    data = _json_body()
    rules = data.get('mapping_rules', data) if data is not None else None
    if not isinstance(rules, dict) or not rules:
        return jsonify({'error': 'Expected a non-empty mapping object'}), 400

    merged = _mapper.save_mapping(source, rules)
    persisted = mapping_store.save_custom_mapping(source_key(source), merged)
    return jsonify({
        'source': source,
        'mapping': _mapper.get_effective_mapping(source),
        'persisted': persisted,
    })


# ---------------------------------------------------------------------------
# CWR
# ---------------------------------------------------------------------------

@app.route('/api/validate-cwr', methods=['POST'])
def api_validate_cwr():
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Expected a JSON body'}), 400
    try:
        result = run_cwr_validation(_works_from_body(data))
    except (AttributeError, TypeError, ValueError) as e:
        return jsonify({'error': f'Invalid works payload: {e}'}), 400
    return jsonify(result.to_dict())


@app.route('/api/export-cwr', methods=['POST'])
def api_export_cwr():
    """Render works (or stored copyright rows) into a downloadable .cwr file."""
    data = _json_body()
    if data is None:
        return jsonify({'error': 'Expected a JSON body'}), 400
    try:
        content = generate_cwr_file(_works_from_body(data), data.get('header'))
    except (AttributeError, TypeError, ValueError) as e:
        return jsonify({'error': f'Invalid export payload: {e}'}), 400

    resp = make_response(content)
    resp.headers['Content-Type'] = 'text/plain; charset=ascii'
    resp.headers['Content-Disposition'] = f'attachment; filename="{cwr_filename()}"'
    return resp


if __name__ == '__main__':
    log.info("Starting Encore mapper on port %d", config.PORT)
    app.run(host='0.0.0.0', port=config.PORT, debug=False)
