"""Tests for the HTTP server routes."""

import io
import json
from wsgiref.util import setup_testing_defaults

import pytest
import requests
from PIL import Image

import server
import settings
from gallery.server_sources import ServerSource


def call(path, query='', method='GET', body=None):
    """Run one request through the WSGI app; returns (status, headers, body)."""
    environ = {}
    setup_testing_defaults(environ)
    environ['PATH_INFO'] = path
    environ['QUERY_STRING'] = query
    environ['REQUEST_METHOD'] = method
    if body is not None:
        data = json.dumps(body).encode('utf-8')
        environ['CONTENT_TYPE'] = 'application/json'
        environ['CONTENT_LENGTH'] = str(len(data))
        environ['wsgi.input'] = io.BytesIO(data)

    captured = {}

    def start_response(status, headers, exc_info=None):
        captured['status'] = int(status.split()[0])
        captured['headers'] = {k.lower(): v for k, v in headers}

    chunks = server.app(environ, start_response)
    try:
        payload = b''.join(chunks)
    finally:
        if hasattr(chunks, 'close'):
            chunks.close()
    return captured['status'], captured['headers'], payload


@pytest.fixture
def services(cache_config, server_root, monkeypatch):
    """Services over the 'Field' server source, already scanned."""
    monkeypatch.setattr(settings, 'WATCH_FOLDERS', False)
    monkeypatch.setattr(settings, 'URL_PREFIX', '')
    svc = server.Services(
        cache_config,
        sources_provider=lambda: [ServerSource('Field', str(server_root / 'Field'))],
    )
    svc.inventory.rescan()
    monkeypatch.setattr(server, 'services', svc)
    yield svc
    svc.stop()


class TestCatalogRoutes:
    """Tests for /server-data and /server-pictures."""

    def test_server_data(self, services):
        """Test sources are listed with their picture counts."""
        status, headers, body = call('/server-data')

        assert status == 200
        assert headers['access-control-allow-origin'] == '*'
        assert json.loads(body) == {
            'sources': [{'id': 1, 'type': 'server', 'name': 'Field', 'pictureCount': 2}]
        }

    def test_server_pictures_page(self, services):
        """Test paging with hasMore."""
        status, _, body = call('/server-pictures', 'limit=1')

        data = json.loads(body)
        assert status == 200
        assert len(data['pictures']) == 1
        assert data['hasMore'] is True
        picture = data['pictures'][0]
        assert picture['path'] in ('/server-images/Field/beetle.jpg', '/server-images/Field/nested/moth.png')
        assert picture['thumbUrl'].startswith('/server-images-thumb/Field/')

    def test_server_pictures_filters(self, services):
        """Test source name and search filters."""
        _, _, body = call('/server-pictures', 'sourceName=Field&searchTerm=MOTH')
        data = json.loads(body)

        assert [p['name'] for p in data['pictures']] == ['moth.png']
        assert data['pictures'][0]['path'] == '/server-images/Field/nested/moth.png'
        assert data['hasMore'] is False

    def test_server_pictures_source_ids(self, services):
        """Test filtering by source ids."""
        _, _, body = call('/server-pictures', 'sourceIds=1')
        assert len(json.loads(body)['pictures']) == 2

        _, _, body = call('/server-pictures', 'sourceIds=99')
        assert json.loads(body)['pictures'] == []

    @pytest.mark.parametrize('query', ['sourceIds=abc', 'offset=-1', 'limit=0', 'limit=x'])
    def test_server_pictures_bad_query(self, services, query):
        """Test malformed query parameters are rejected."""
        status, _, _ = call('/server-pictures', query)
        assert status == 400

    def test_not_started(self, monkeypatch):
        """Test requests before startup get 503."""
        monkeypatch.setattr(server, 'services', None)

        status, _, _ = call('/server-data')

        assert status == 503


class TestThumbnailRoute:
    """Tests for /server-images-thumb."""

    def test_thumbnail_generated(self, services):
        """Test a thumbnail is generated at the quantized tier."""
        status, headers, body = call('/server-images-thumb/Field/beetle.jpg', 'width=300&dpr=2')

        assert status == 200
        assert headers['x-thumbnail-tier'] == '800'
        assert headers['content-type'].startswith('image/jpeg')
        assert 'max-age' in headers['cache-control']
        with Image.open(io.BytesIO(body)) as img:
            assert img.size == (800, 533)

    def test_thumbnail_cached(self, services):
        """Test repeated requests reuse the cached file."""
        call('/server-images-thumb/Field/beetle.jpg', 'width=400')
        call('/server-images-thumb/Field/beetle.jpg', 'width=350')

        assert services.cache.generation_count == 1

    @pytest.mark.parametrize('query', ['', 'width=', 'width=abc', 'width=0', 'width=100&dpr=x',
                                       'width=inf', 'width=nan', 'width=100&dpr=inf'])
    def test_bad_width(self, services, query):
        """Test missing or invalid widths are rejected."""
        status, _, _ = call('/server-images-thumb/Field/beetle.jpg', query)
        assert status == 400

    def test_traversal(self, services):
        """Test paths escaping the source root are forbidden."""
        status, _, _ = call('/server-images-thumb/Field/../../etc/passwd', 'width=400')
        assert status == 403

    def test_unknown_source(self, services):
        status, _, _ = call('/server-images-thumb/Nope/beetle.jpg', 'width=400')
        assert status == 404

    def test_missing_picture(self, services):
        status, _, _ = call('/server-images-thumb/Field/ghost.jpg', 'width=400')
        assert status == 404

    def test_undecodable(self, services, server_root):
        """Test a corrupt picture is reported as unsupported media."""
        (server_root / 'Field' / 'broken.jpg').write_bytes(b'garbage')

        status, _, _ = call('/server-images-thumb/Field/broken.jpg', 'width=400')

        assert status == 415

    def test_svg_served_as_is(self, services, server_root):
        """Test vector pictures are passed through unresized."""
        svg = b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"/>'
        (server_root / 'Field' / 'logo.svg').write_bytes(svg)

        status, headers, body = call('/server-images-thumb/Field/logo.svg', 'width=400')

        assert status == 200
        assert body == svg
        assert services.cache.generation_count == 0


class TestOriginalRoute:
    """Tests for /server-images."""

    def test_original(self, services, server_root):
        """Test the original bytes are streamed."""
        status, headers, body = call('/server-images/Field/nested/moth.png')

        assert status == 200
        assert headers['content-type'] == 'image/png'
        assert body == (server_root / 'Field' / 'nested' / 'moth.png').read_bytes()

    def test_original_missing(self, services):
        status, _, _ = call('/server-images/Field/nested')
        assert status == 404

    def test_original_traversal(self, services):
        status, _, _ = call('/server-images/Field/../secret.txt')
        assert status == 403


class TestProxyRoute:
    """Tests for /proxy."""

    def test_proxy_forwards(self, mocker):
        """Test the request is relayed with method, headers and body."""
        upstream = mocker.MagicMock()
        upstream.status_code = 201
        upstream.headers = {'content-type': 'application/json; charset=utf-8'}
        upstream.content = b'{"ok": true}'
        send = mocker.patch('server.requests.request', return_value=upstream)

        status, headers, body = call('/proxy', method='POST', body={
            'url': 'https://api.example.com/search',
            'method': 'post',
            'headers': {'Authorization': 'Bearer t'},
            'body': '{"page": 1}',
        })

        assert status == 201
        assert headers['content-type'] == 'application/json'
        assert body == b'{"ok": true}'
        send.assert_called_once_with(
            'POST', 'https://api.example.com/search',
            headers={'Authorization': 'Bearer t'},
            data='{"page": 1}',
            timeout=settings.PROXY_TIMEOUT,
        )

    def test_proxy_get_drops_body(self, mocker):
        """Test GET requests are sent without a body."""
        upstream = mocker.MagicMock(status_code=200, headers={}, content=b'hello')
        send = mocker.patch('server.requests.request', return_value=upstream)

        status, headers, body = call('/proxy', method='POST', body={'url': 'https://x', 'body': 'ignored'})

        assert status == 200
        assert body == b'hello'
        assert send.call_args.kwargs['data'] is None

    def test_proxy_requires_url(self):
        status, _, body = call('/proxy', method='POST', body={})

        assert status == 400
        assert json.loads(body) == {'error': 'URL is required'}

    def test_proxy_upstream_failure(self, mocker):
        """Test network failures map to 502."""
        mocker.patch('server.requests.request', side_effect=requests.ConnectionError('refused'))

        status, _, body = call('/proxy', method='POST', body={'url': 'https://x'})

        assert status == 502
        assert 'refused' in json.loads(body)['error']


class TestServices:
    """Tests for Services wiring."""

    def test_health(self):
        status, _, body = call('/health')

        assert status == 200
        assert json.loads(body) == {'status': 'ok'}

    def test_maintenance_tick_pregenerates(self, services, monkeypatch):
        """Test an idle maintenance tick warms every tier."""
        monkeypatch.setattr(settings, 'ENABLE_PREGEN', True)

        services.maintenance_tick()

        assert len(services.metadata) == 6
        assert all(e.access_count == 0 for e in services.metadata.entries())

    def test_maintenance_tick_persists(self, services, monkeypatch):
        """Test request-driven metadata changes are written out."""
        monkeypatch.setattr(settings, 'ENABLE_PREGEN', False)
        call('/server-images-thumb/Field/beetle.jpg', 'width=400')
        assert services.metadata.dirty

        services.maintenance_tick()

        assert not services.metadata.dirty
        assert len(services.metadata) == 1

    def test_start_and_stop(self, cache_config, server_root, monkeypatch):
        """Test a cold start scans before serving."""
        monkeypatch.setattr(settings, 'WATCH_FOLDERS', False)
        svc = server.Services(
            cache_config,
            sources_provider=lambda: [ServerSource('Field', str(server_root / 'Field'))],
        )

        svc.start()
        try:
            assert svc.inventory.inventory.total_pictures == 2
            assert len(svc.pregenerator) == 2
            assert all(task.is_running for task in svc.tasks)
        finally:
            svc.stop()

        assert not any(task.is_running for task in svc.tasks)
