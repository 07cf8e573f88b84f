"""Tests for the file manager HTTP API."""

import pytest
from fastapi.testclient import TestClient

from filemanager import config, service_locator
from filemanager.chunk_sessions import ChunkSessionStore
from filemanager.chunk_storage import ChunkScratchStorage
from filemanager.main import app
from filemanager.progress import ProgressRegistry

HEADERS = {'X-API-Key': 'test-key', 'X-User-Site': 'acme'}


@pytest.fixture
def site_root(tmp_path):
    root = tmp_path / 'sites' / 'acme'
    root.mkdir(parents=True)
    return root


@pytest.fixture
def client(tmp_path, site_root, monkeypatch):
    """Create FastAPI test client over a temporary base path."""
    monkeypatch.setattr(config, 'BASE_PATH', str(tmp_path / 'sites'))
    monkeypatch.setattr(config, 'API_KEY', 'test-key')
    service_locator.set_progress_registry(ProgressRegistry())
    service_locator.set_session_store(ChunkSessionStore())
    service_locator.set_scratch_storage(ChunkScratchStorage(str(tmp_path / 'scratch')))

    with TestClient(app) as test_client:
        yield test_client


def _create(client, path, content=''):
    response = client.post('/api/v1/fs/file', json={'path': path, 'content': content}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()['data']


def test_root_endpoint(client):
    response = client.get('/')
    assert response.status_code == 200
    assert response.json()['status'] == 'running'


def test_health_endpoints(client):
    assert client.get('/health').json()['status'] == 'healthy'

    data = client.get('/api/v1/health').json()
    assert data['success'] is True
    assert data['data']['status'] == 'healthy'


def test_request_id_header(client):
    response = client.get('/health')
    assert response.headers['X-Request-ID']


def test_missing_api_key(client):
    response = client.get('/api/v1/fs', headers={'X-User-Site': 'acme'})
    assert response.status_code == 401
    data = response.json()
    assert data['success'] is False
    assert data['error']['code'] == 'INVALID_API_KEY'


def test_wrong_api_key(client):
    response = client.get('/api/v1/fs', headers={'X-API-Key': 'nope', 'X-User-Site': 'acme'})
    assert response.status_code == 401


@pytest.mark.parametrize('site', ['', '..', '../etc', 'a/b'])
def test_invalid_site(client, site):
    response = client.get('/api/v1/fs', headers={'X-API-Key': 'test-key', 'X-User-Site': site})
    assert response.status_code == 400
    assert response.json()['error']['code'] == 'INVALID_REQUEST'


def test_file_lifecycle(client, site_root):
    created = _create(client, 'notes/a.txt', 'hi')
    assert created['path'] == 'notes/a.txt'
    assert created['mime_type'] == 'text/plain'

    listing = client.get('/api/v1/fs', params={'path': 'notes'}, headers=HEADERS).json()['data']
    assert [f['name'] for f in listing['files']] == ['a.txt']

    response = client.put('/api/v1/fs/file', json={'path': 'notes/a.txt', 'content': 'hello'}, headers=HEADERS)
    assert response.json()['data']['size'] == 5

    response = client.put('/api/v1/fs/rename', json={'path': 'notes/a.txt', 'new_name': 'b.txt'}, headers=HEADERS)
    assert response.json()['data']['path'] == 'notes/b.txt'

    response = client.delete('/api/v1/fs', params={'path': 'notes/b.txt'}, headers=HEADERS)
    assert response.status_code == 200
    assert not (site_root / 'notes' / 'b.txt').exists()


def test_create_existing_file_conflicts(client):
    _create(client, 'a.txt')
    response = client.post('/api/v1/fs/file', json={'path': 'a.txt'}, headers=HEADERS)
    assert response.status_code == 409
    assert response.json()['error']['code'] == 'ALREADY_EXISTS'


def test_info_and_disk_usage(client):
    _create(client, 'docs/a.txt', 'alpha')
    _create(client, 'docs/b.txt', 'bravo!')

    info = client.get('/api/v1/fs/info', params={'path': 'docs'}, headers=HEADERS).json()['data']
    assert info['is_dir'] is True
    assert info['size'] == 11

    usage = client.get('/api/v1/fs/disk-usage', headers=HEADERS).json()['data']
    assert usage['size'] == 11
    assert usage['size_human'] == '11 B'


def test_download(client):
    _create(client, 'report.txt', 'quarterly numbers')

    response = client.get('/api/v1/fs/download', params={'path': 'report.txt'}, headers=HEADERS)
    assert response.status_code == 200
    assert response.content == b'quarterly numbers'
    assert response.headers['content-disposition'] == "attachment; filename*=UTF-8''report.txt"


def test_download_folder_rejected(client, site_root):
    (site_root / 'docs').mkdir()
    response = client.get('/api/v1/fs/download', params={'path': 'docs'}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()['error']['code'] == 'NOT_A_FILE'


def test_traversal_is_forbidden(client):
    response = client.get('/api/v1/fs', params={'path': '../other'}, headers=HEADERS)
    assert response.status_code == 403
    assert response.json()['error']['code'] == 'PATH_TRAVERSAL'


def test_missing_path(client):
    response = client.get('/api/v1/fs/info', params={'path': 'ghost.txt'}, headers=HEADERS)
    assert response.status_code == 404
    assert response.json()['error']['code'] == 'NOT_FOUND'


def test_delete_non_empty_folder(client, site_root):
    _create(client, 'docs/a.txt', 'x')

    response = client.delete('/api/v1/fs', params={'path': 'docs'}, headers=HEADERS)
    assert response.status_code == 409
    assert response.json()['error']['code'] == 'FOLDER_NOT_EMPTY'

    response = client.delete('/api/v1/fs', params={'path': 'docs', 'recursive': 'true'}, headers=HEADERS)
    assert response.status_code == 200
    assert not (site_root / 'docs').exists()


def test_delete_root_rejected(client):
    response = client.delete('/api/v1/fs', params={'path': ''}, headers=HEADERS)
    assert response.status_code == 400


def test_copy_and_move(client, site_root):
    _create(client, 'a.txt', 'alpha')

    response = client.post('/api/v1/fs/copy', json={'sources': ['a.txt'], 'destination': ''}, headers=HEADERS)
    assert [f['path'] for f in response.json()['data']['files']] == ['a_1.txt']

    response = client.post('/api/v1/fs/move', json={'sources': ['a_1.txt'], 'destination': 'archive'}, headers=HEADERS)
    assert [f['path'] for f in response.json()['data']['files']] == ['archive/a_1.txt']
    assert (site_root / 'archive' / 'a_1.txt').read_text() == 'alpha'


def test_copy_requires_sources(client):
    response = client.post('/api/v1/fs/copy', json={'sources': []}, headers=HEADERS)
    assert response.status_code == 422


def test_upload_and_progress(client, site_root):
    response = client.post(
        '/api/v1/upload',
        files={'file': ('report.txt', b'data')},
        data={'destination': 'in'},
        headers=HEADERS,
    )
    assert response.status_code == 200
    data = response.json()
    assert data['success'] is True
    assert data['data']['path'] == 'in/report.txt'
    assert (site_root / 'in' / 'report.txt').read_bytes() == b'data'

    upload_id = data['data']['upload_id']
    progress = client.get(f'/api/v1/progress/{upload_id}', headers={'X-API-Key': 'test-key'}).json()['data']
    assert progress['status'] == 'completed'
    assert progress['percentage'] == 100


def test_upload_over_limit(client, monkeypatch):
    monkeypatch.setattr(config, 'MAX_UPLOAD_SIZE', 3)
    response = client.post('/api/v1/upload', files={'file': ('big.bin', b'0123456789')}, headers=HEADERS)
    assert response.status_code == 400


def test_chunked_upload(client, site_root):
    response = client.post(
        '/api/v1/upload/chunked/init',
        json={'filename': 'big.bin', 'destination': 'in', 'total_size': 10, 'chunk_size': 5},
        headers=HEADERS,
    )
    session = response.json()['data']
    assert session['total_chunks'] == 2

    response = client.post(
        '/api/v1/upload/chunked',
        data={'upload_id': session['upload_id'], 'chunk_index': '1'},
        files={'chunk': ('blob', b'world')},
        headers=HEADERS,
    )
    assert response.json()['data']['status'] == 'uploading'

    response = client.post(
        '/api/v1/upload/chunked',
        data={'upload_id': session['upload_id'], 'chunk_index': '0'},
        files={'chunk': ('blob', b'hello')},
        headers=HEADERS,
    )
    progress = response.json()['data']
    assert progress['status'] == 'completed'
    assert progress['path'] == 'in/big.bin'
    assert (site_root / 'in' / 'big.bin').read_bytes() == b'helloworld'


def test_chunk_for_unknown_session(client):
    response = client.post(
        '/api/v1/upload/chunked',
        data={'upload_id': 'missing', 'chunk_index': '0'},
        files={'chunk': ('blob', b'x')},
        headers=HEADERS,
    )
    assert response.status_code == 404


def test_abandon_chunked_upload(client):
    response = client.post(
        '/api/v1/upload/chunked/init',
        json={'filename': 'big.bin', 'total_size': 10, 'chunk_size': 5},
        headers=HEADERS,
    )
    upload_id = response.json()['data']['upload_id']

    response = client.delete(f'/api/v1/upload/chunked/{upload_id}', headers=HEADERS)
    assert response.status_code == 200

    progress = client.get(f'/api/v1/progress/{upload_id}', headers=HEADERS).json()['data']
    assert progress['status'] == 'failed'


def test_compress_and_extract(client, site_root):
    _create(client, 'docs/a.txt', 'alpha')

    response = client.post('/api/v1/compress', json={'paths': ['docs'], 'output': 'bundle.zip'}, headers=HEADERS)
    data = response.json()['data']
    assert data['status'] == 'completed'
    assert data['path'] == 'bundle.zip'

    response = client.post('/api/v1/extract', json={'source': 'bundle.zip', 'destination': 'restored'}, headers=HEADERS)
    assert response.json()['data']['status'] == 'completed'
    assert (site_root / 'restored' / 'docs' / 'a.txt').read_text() == 'alpha'


def test_compress_without_inputs(client):
    response = client.post('/api/v1/compress', json={'paths': ['ghost'], 'output': 'out.zip'}, headers=HEADERS)
    assert response.status_code == 404


def test_extract_non_zip(client):
    _create(client, 'fake.zip', 'plain text')
    response = client.post('/api/v1/extract', json={'source': 'fake.zip'}, headers=HEADERS)
    assert response.status_code == 400


def test_progress_requires_api_key(client):
    response = client.get('/api/v1/progress/anything')
    assert response.status_code == 401


def test_progress_unknown_id(client):
    response = client.get('/api/v1/progress/anything', headers=HEADERS)
    assert response.status_code == 404


def test_progress_event_stream(client):
    response = client.post('/api/v1/upload', files={'file': ('a.txt', b'abc')}, headers=HEADERS)
    upload_id = response.json()['data']['upload_id']

    response = client.get(f'/api/v1/progress/{upload_id}/events', headers=HEADERS)
    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/event-stream')
    assert response.text.startswith('data: ')
    assert '"status": "completed"' in response.text


def test_remote_without_key_rejected(client):
    headers = {**HEADERS, 'X-Ssh-Host': 'files.example.com'}
    response = client.get('/api/v1/fs', headers=headers)
    assert response.status_code == 400


def test_remote_with_bad_key(client):
    headers = {**HEADERS, 'X-Ssh-Host': 'files.example.com', 'X-Ssh-Key': 'not a key'}
    response = client.get('/api/v1/fs', headers=headers)
    assert response.status_code == 502
    assert response.json()['error']['code'] == 'SSH_ERROR'
