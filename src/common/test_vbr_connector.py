from unittest.mock import MagicMock, patch

import pytest
import requests

from src.common.errors import CatalogError, ConnectivityError
from src.common.vbr_connector import DEFAULT_CONFIG, ConfigLoader, VbrConnector
from src.common.vbr_models import ExtentType, ScaleOutRepository, SimpleRepository


def _config(**veeam):
    config = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}
    config['veeam'].update({'server': 'vbr01.lab.local', 'username': 'svc', 'password': 'secret'})
    config['veeam'].update(veeam)
    return config


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


def _routes(mapping):
    """Fake requests.get answering each API path with one page of data."""
    def fake_get(url, **kwargs):
        path = url.split(':9419', 1)[1]
        data = mapping.get(path, [])
        return _response({'data': data, 'pagination': {'total': len(data)}})
    return fake_get


def _connected(**veeam):
    connector = VbrConnector(_config(**veeam))
    connector.token = "token"
    return connector


@patch('src.common.vbr_connector.requests.post')
def test_connect_stores_token(mock_post):
    mock_post.return_value = _response({'access_token': 'abc'})
    connector = VbrConnector(_config())

    connector.connect()

    assert connector.token == 'abc'
    url = mock_post.call_args.args[0]
    assert url == "https://vbr01.lab.local:9419/api/oauth2/token"
    assert mock_post.call_args.kwargs['data']['grant_type'] == 'password'
    assert mock_post.call_args.kwargs['headers']['x-api-version'] == '1.1-rev2'


@patch('src.common.vbr_connector.requests.post')
def test_connect_failure_raises(mock_post):
    mock_post.side_effect = requests.ConnectionError("refused")

    with pytest.raises(ConnectivityError) as exc:
        VbrConnector(_config()).connect()
    assert exc.value.exit_code == 2


def test_connect_without_server_raises():
    with pytest.raises(ConnectivityError):
        VbrConnector(_config(server='')).connect()


@patch('src.common.vbr_connector.requests.post')
def test_disconnect_is_idempotent(mock_post):
    connector = _connected()

    connector.disconnect()
    connector.disconnect()

    assert mock_post.call_count == 1
    assert mock_post.call_args.args[0].endswith("/api/oauth2/logout")
    assert connector.token is None


@patch('src.common.vbr_connector.requests.get')
def test_paging_follows_skip(mock_get):
    mock_get.side_effect = [
        _response({'data': [{'id': '1'}, {'id': '2'}], 'pagination': {'total': 3}}),
        _response({'data': [{'id': '3'}], 'pagination': {'total': 3}}),
    ]
    connector = _connected(page_size=2)

    items = connector._get_all("/api/v1/backups")

    assert [i['id'] for i in items] == ['1', '2', '3']
    assert mock_get.call_args_list[1].kwargs['params'] == {'skip': 2, 'limit': 2}


def test_catalog_requires_session():
    with pytest.raises(ConnectivityError):
        VbrConnector(_config()).list_backups()


@patch('src.common.vbr_connector.requests.get')
def test_repositories_join_extents_with_members(mock_get):
    mock_get.side_effect = _routes({
        '/api/v1/backupInfrastructure/managedServers': [{'id': 'h1', 'name': 'This server'},
                                                        {'id': 'h2', 'name': 'repo02.lab.local'}],
        '/api/v1/backupInfrastructure/repositories': [
            {'id': 'r1', 'name': 'Repo01', 'type': 'WinLocal', 'hostId': 'h1', 'repository': {'path': 'D:\\Backups'}},
            {'id': 'r2', 'name': 'Share01', 'type': 'Smb', 'share': {'sharePath': '\\\\nas01\\backups'}},
            {'id': 'r3', 'name': 'DD01', 'type': 'DDBoost', 'hostId': 'h2'},
        ],
        '/api/v1/backupInfrastructure/scaleOutRepositories': [{
            'id': 's1', 'name': 'SOBR01',
            'performanceTier': {'performanceExtents': [{'id': 'r1', 'status': 'Normal'}, {'id': 'r2'}, {'id': 'r3'}]},
            'capacityTier': {'isEnabled': True},
        }],
    })

    repositories = _connected().list_repositories()

    assert isinstance(repositories['r1'], SimpleRepository)
    sobr = repositories['s1']
    assert isinstance(sobr, ScaleOutRepository)
    assert sobr.capacity_tier_enabled is True
    local, share, dedup = sobr.extents
    assert local.type == ExtentType.WINDOWS_LOCAL
    assert local.host_name == 'This server'
    assert local.path == 'D:\\Backups'
    assert local.name == 'Repo01'
    assert share.type == ExtentType.NETWORK_SHARE
    assert share.path == '\\\\nas01\\backups'
    assert dedup.type == ExtentType.UNSUPPORTED
    assert dedup.raw_type == 'DDBoost'


@patch('src.common.vbr_connector.requests.get')
def test_tenants_keep_sizes_in_mb(mock_get):
    mock_get.side_effect = _routes({'/api/v1/cloudConnect/tenants': [{
        'id': 't1', 'name': 'TenantA', 'isEnabled': False,
        'resources': [{'repositoryId': 's1', 'friendlyName': 'TenantA Cloud', 'quota': 20480,
                       'usedSpace': 1024, 'folderName': 'TenantA'}],
    }]})

    tenant = _connected().list_tenants()[0]

    assert tenant.enabled is False
    resource = tenant.resources[0]
    assert resource.quota_mb == 20480
    assert resource.used_space_mb == 1024
    assert resource.folder == 'TenantA'
    assert resource.repository_id == 's1'


@patch('src.common.vbr_connector.requests.get')
def test_tenant_resource_without_repository_is_a_catalog_error(mock_get):
    mock_get.side_effect = _routes({'/api/v1/cloudConnect/tenants': [{
        'id': 't1', 'name': 'TenantA',
        'resources': [{'friendlyName': 'TenantA Cloud', 'quota': 20480}],
    }]})

    with pytest.raises(CatalogError) as exc:
        _connected().list_tenants()
    assert exc.value.exit_code == 5
    assert "repositoryId" in exc.value.message


@patch('src.common.vbr_connector.requests.get')
def test_negative_quota_is_a_catalog_error(mock_get):
    mock_get.side_effect = _routes({'/api/v1/cloudConnect/tenants': [{
        'id': 't1', 'name': 'TenantA',
        'resources': [{'repositoryId': 's1', 'quota': -1}],
    }]})

    with pytest.raises(CatalogError):
        _connected().list_tenants()


@patch('src.common.vbr_connector.requests.get')
def test_backup_files_skip_points_without_time(mock_get):
    mock_get.side_effect = _routes({'/api/v1/backups/b1/backupFiles': [
        {'id': 'f1', 'type': 'Full', 'backupSize': 100, 'creationTime': '2024-05-01T22:00:00+02:00'},
        {'id': 'f2', 'type': 'Increment', 'backupSize': 5, 'creationTime': '2024-05-02T22:00:00+02:00'},
        {'id': 'f3', 'type': 'Increment', 'backupSize': 5},
    ]})

    points = _connected().list_backup_files('b1')

    assert [p.id for p in points] == ['f1', 'f2']
    assert points[0].is_full and not points[1].is_full


@patch('src.common.vbr_connector.load_dotenv')
def test_config_defaults_and_env_overrides(mock_dotenv, tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("veeam:\n  timeout: 15\ncustom:\n  key: 1\n", encoding='utf-8')
    monkeypatch.setenv('VEEAM_SERVER', 'vbr02.lab.local')
    monkeypatch.setenv('VEEAM_PORT', '9420')
    monkeypatch.setenv('VEEAM_STORAGE_USERNAME', 'LAB\\svc-backup')

    config = ConfigLoader.load_config(str(path))

    assert config['veeam']['timeout'] == 15
    assert config['veeam']['server'] == 'vbr02.lab.local'
    assert config['veeam']['port'] == 9420
    assert config['veeam']['api_version'] == DEFAULT_CONFIG['veeam']['api_version']
    assert config['storage']['username'] == 'LAB\\svc-backup'
    assert config['custom'] == {'key': 1}
