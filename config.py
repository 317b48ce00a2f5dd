"""
Runtime configuration, read from the environment (and a local .env file).
"""

import os

from dotenv import load_dotenv

load_dotenv()

_here = os.path.dirname(os.path.abspath(__file__))

# CWR transmission header
CWR_SENDER_ID = os.getenv('CWR_SENDER_ID', 'ENCORE001')
CWR_SENDER_NAME = os.getenv('CWR_SENDER_NAME', 'ENCORE MUSIC PUBLISHING')
CWR_SENDER_TYPE = os.getenv('CWR_SENDER_TYPE', 'PB')

# Custom mapping store
MAPPING_DB_PATH = os.getenv('MAPPING_DB_PATH', os.path.join(_here, 'mappings.db'))

# Logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
LOG_FILE = os.getenv('LOG_FILE', '')

# HTTP
MAX_UPLOAD_MB = int(os.getenv('MAX_UPLOAD_MB', '50'))
FLASK_SECRET_KEY = os.getenv('FLASK_SECRET_KEY', os.urandom(24).hex())
PORT = int(os.getenv('PORT', '8080'))
