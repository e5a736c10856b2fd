#!/usr/bin/env python3

import json
import logging
import os
import threading
from functools import wraps
from typing import Callable, List, Optional
from urllib.parse import quote

import requests
from bottle import Bottle, HTTPResponse, Response, abort, request, response, static_file

import settings
from gallery.cache_config import CacheConfig
from gallery.cache_metadata import CacheMetadataStore
from gallery.changeset import Changeset
from gallery.errors import DecodeFailure, NotFound, PathTraversal
from gallery.evictor import Evictor
from gallery.folder_watcher import FolderWatcher
from gallery.periodic import PeriodicTask
from gallery.picture_record import PictureRecord
from gallery.pregenerator import IdlePregenerator
from gallery.rescan_scheduler import DebouncedRescan
from gallery.server_inventory import ServerInventory
from gallery.server_sources import ServerSource, load_server_sources
from gallery.thumbnail_cache import ThumbnailCache

app = application = Bottle()


def log(msg):
    logging.debug(msg)


class Services:
    """Long-lived server state: inventory, thumbnail cache and maintenance tasks."""

    def __init__(
        self,
        config: CacheConfig,
        sources_provider: Callable[[], List[ServerSource]] = load_server_sources,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config
        self.logger = logger or logging.getLogger('gallery.server')
        self.maintenance_lock = threading.Lock()

        self.metadata = CacheMetadataStore(config.cache_dir, config.metadata_path, logger=self.logger)
        self.inventory = ServerInventory(
            config, metadata=self.metadata, sources_provider=sources_provider, logger=self.logger
        )
        self.cache = ThumbnailCache(config, self.metadata, self.inventory.root_for, logger=self.logger)
        self.evictor = Evictor(
            self.metadata, config, in_flight=self.cache.in_flight_keys,
            lock=self.maintenance_lock, logger=self.logger
        )
        self.pregenerator = IdlePregenerator(
            self.cache, self.metadata, config, lock=self.maintenance_lock, logger=self.logger
        )
        self.debouncer = DebouncedRescan(self.inventory.rescan, delay=config.rescan_delay, logger=self.logger)
        self.watcher = FolderWatcher(self.debouncer.trigger, logger=self.logger)
        self.tasks = [
            PeriodicTask('cache-sweep', config.sweep_interval, self.evictor.sweep, logger=self.logger),
            PeriodicTask('cache-maintenance', config.pregen_interval, self.maintenance_tick, logger=self.logger),
        ]
        self.inventory.add_listener(self.on_changeset)

    def maintenance_tick(self) -> None:
        """Persist request-driven metadata changes, then pregenerate if idle."""
        self.metadata.persist_if_dirty()
        if settings.ENABLE_PREGEN:
            self.pregenerator.run_once(max_batches=1)

    def on_changeset(self, changeset: Changeset) -> None:
        self.pregenerator.seed(self.inventory.picture_items())
        if settings.WATCH_FOLDERS:
            roots = [s.path for s in self.inventory.sources if s.path]
            if set(roots) != set(self.watcher.roots):
                self.watcher.watch(roots)

    def start(self) -> None:
        self.metadata.load()
        self.inventory.load()
        if settings.WATCH_FOLDERS:
            self.watcher.watch([s.path for s in self.inventory.sources if s.path])
        self.inventory.start(schedule_rescan=self.debouncer.trigger)
        self.pregenerator.seed(self.inventory.picture_items())
        for task in self.tasks:
            task.start()

    def stop(self) -> None:
        self.debouncer.cancel()
        self.pregenerator.stop()
        for task in self.tasks:
            task.stop(timeout=5)
        self.watcher.stop()
        self.metadata.persist_if_dirty()


services: Optional[Services] = None


def get_services() -> Services:
    if services is None:
        abort(503, "Server is starting")
    return services


def allow_cross_origin(func):
    """Decorate a view function to allow cross domain access."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            result = func(*args, **kwargs)
        except HTTPResponse as r:
            r.set_header('Access-Control-Allow-Origin', '*')
            raise
        (result if isinstance(result, Response) else response) \
            .set_header('Access-Control-Allow-Origin', '*')
        return result
    return wrapper


def json_response(payload, status=200):
    response.content_type = 'application/json'
    response.status = status
    return json.dumps(payload)


def query_int(name, default, minimum=0, maximum=None):
    """Read an integer query parameter, aborting with 400 when malformed."""
    raw = request.query.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except ValueError:
        abort(400, f"Invalid {name}: {raw!r}")
    if value < minimum:
        abort(400, f"{name} must be >= {minimum}")
    if maximum is not None:
        value = min(value, maximum)
    return value


def query_float(name, default=None):
    raw = request.query.get(name)
    if raw in (None, ''):
        return default
    try:
        return float(raw)
    except ValueError:
        abort(400, f"Invalid {name}: {raw!r}")


def picture_url(source_name: str, identifier: str, thumb: bool = False) -> str:
    """Public URL of a picture, each path segment percent-encoded."""
    route = 'server-images-thumb' if thumb else 'server-images'
    return f"{settings.URL_PREFIX}/{route}/{quote(source_name, safe='')}/{quote(identifier, safe='/')}"


def picture_to_dict(picture: PictureRecord, source_name: str) -> dict:
    return {
        'id': picture.id,
        'sourceId': picture.source_id,
        'name': picture.name,
        'path': picture_url(source_name, picture.identifier),
        'thumbUrl': picture_url(source_name, picture.identifier, thumb=True),
        'modified': picture.modified,
        'size': picture.size,
        'width': picture.width,
        'height': picture.height,
    }


def serve_original(svc: Services, source: str, path: str):
    try:
        full_path = svc.cache.resolve_source_path(source, path)
    except PathTraversal as e:
        log(f"Rejected path: {e}")
        abort(403, "Forbidden")
    except NotFound as e:
        abort(404, str(e))

    if not full_path.is_file():
        abort(404, "Image not found")
    return static_file(full_path.name, root=str(full_path.parent))


@app.route('/server-data')
@allow_cross_origin
def server_data():
    """List the server sources."""
    svc = get_services()
    sources = [
        {'id': s.id, 'type': s.kind, 'name': s.name, 'pictureCount': s.picture_count}
        for s in svc.inventory.sources
    ]
    return json_response({'sources': sources})


@app.route('/server-pictures')
@allow_cross_origin
def server_pictures():
    """Page through server pictures, newest first."""
    svc = get_services()

    source_ids = None
    raw_ids = request.query.get('sourceIds')
    if raw_ids:
        try:
            source_ids = [int(part) for part in raw_ids.split(',') if part.strip()]
        except ValueError:
            abort(400, f"Invalid sourceIds: {raw_ids!r}")

    offset = query_int('offset', 0)
    limit = query_int('limit', settings.DEFAULT_PAGE_SIZE, minimum=1, maximum=settings.MAX_PAGE_SIZE)

    pictures, has_more = svc.inventory.query(
        source_ids=source_ids,
        source_name=request.query.get('sourceName') or None,
        search_term=request.query.get('searchTerm', ''),
        offset=offset,
        limit=limit,
    )
    names = {s.id: s.name for s in svc.inventory.sources}
    return json_response({
        'pictures': [picture_to_dict(p, names[p.source_id]) for p in pictures if p.source_id in names],
        'hasMore': has_more,
    })


@app.route('/server-images-thumb/<source>/<path:path>')
def server_image_thumb(source, path):
    """Serve a thumbnail at the tier nearest to width * dpr, generating it if needed."""
    svc = get_services()
    width = query_float('width')
    if width is None:
        abort(400, "width is required")
    dpr = query_float('dpr', 1.0)

    if path.lower().endswith('.svg'):
        return serve_original(svc, source, path)

    try:
        result = svc.cache.get(source, path, width, dpr)
    except PathTraversal as e:
        log(f"Rejected thumbnail path: {e}")
        abort(403, "Forbidden")
    except NotFound as e:
        abort(404, str(e))
    except DecodeFailure as e:
        abort(415, str(e))
    except ValueError as e:
        abort(400, str(e))

    resp = static_file(result.key, root=str(svc.metadata.cache_dir), mimetype=result.content_type)
    resp.set_header('Cache-Control', 'public, max-age=86400')
    resp.set_header('X-Thumbnail-Tier', str(result.tier))
    return resp


@app.route('/server-images/<source>/<path:path>')
def server_image(source, path):
    """Stream an original picture."""
    return serve_original(get_services(), source, path)


@app.route('/proxy', method='POST')
@allow_cross_origin
def proxy():
    """Relay a request to a remote picture API on behalf of a browser client."""
    payload = request.json or {}
    url = payload.get('url')
    if not url:
        return json_response({'error': 'URL is required'}, status=400)

    method = (payload.get('method') or 'GET').upper()
    body = payload.get('body') if method != 'GET' else None
    try:
        upstream = requests.request(
            method, url,
            headers=payload.get('headers') or {},
            data=body,
            timeout=settings.PROXY_TIMEOUT,
        )
    except requests.RequestException as e:
        log(f"Proxy request to {url} failed: {e}")
        return json_response({'error': str(e)}, status=502)

    response.status = upstream.status_code
    content_type = upstream.headers.get('content-type', '')
    if 'application/json' in content_type:
        response.content_type = 'application/json'
    else:
        response.content_type = content_type or 'text/plain; charset=utf-8'
    return upstream.content


@app.route('/health')
@allow_cross_origin
def health():
    return json_response({'status': 'ok'})


@app.route('/')
def main_page():
    log("Hit root")
    return 'Picture gallery server'


def setup_logging():
    level = logging.getLevelName(settings.LOG_LEVEL)
    logging.basicConfig(
        filename=settings.LOG_FILE,
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s'
    )
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('watchdog').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def main():
    global services
    from bottle import run

    setup_logging()
    errors = settings.CACHE.validate()
    if errors:
        for error in errors:
            logging.error(error)
        return 1

    os.makedirs(settings.CACHE.cache_dir, exist_ok=True)
    log("Starting up....")
    services = Services(settings.CACHE)
    services.start()

    log("running server...")
    try:
        run(app=application,
            host=settings.HOST,
            port=settings.PORT,
            server=settings.SERVER,
            debug=settings.DEBUG_APP)
    finally:
        services.stop()
        log("Exiting.")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
