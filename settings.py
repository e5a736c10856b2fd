"""Server settings, read from the environment."""

import os

from gallery.cache_config import CacheConfig

# Host and port the server binds to.
HOST = os.getenv('HOST', '0.0.0.0')
PORT = int(os.getenv('PORT', '3889'))

# Bottle server adapter, e.g. 'wsgiref', 'paste', 'gunicorn'.
SERVER = os.getenv('SERVER', 'wsgiref')

DEBUG_APP = os.getenv('DEBUG_APP', 'false').lower() in ('1', 'true', 'yes')

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
LOG_FILE = os.getenv('LOG_FILE') or None

# Public prefix for picture URLs when served behind a proxy.
URL_PREFIX = os.getenv('URL_PREFIX', '').rstrip('/')

# Default and maximum page size of /server-pictures.
DEFAULT_PAGE_SIZE = int(os.getenv('DEFAULT_PAGE_SIZE', '50'))
MAX_PAGE_SIZE = int(os.getenv('MAX_PAGE_SIZE', '500'))

# Timeout in seconds for /proxy requests.
PROXY_TIMEOUT = float(os.getenv('PROXY_TIMEOUT', '30'))

# Disable the file watcher and maintenance tasks, e.g. on read-only mounts.
WATCH_FOLDERS = os.getenv('WATCH_FOLDERS', 'true').lower() in ('1', 'true', 'yes')
ENABLE_PREGEN = os.getenv('ENABLE_PREGEN', 'true').lower() in ('1', 'true', 'yes')

CACHE = CacheConfig.from_env()
