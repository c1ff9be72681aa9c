"""Tests for argument parsing, username resolution and the bulk command."""

from __future__ import annotations

import csv

import pytest

import sfu.cli as cli_module
import sfu.commands as commands_module
from sfu.commands import bulk_command, connect, resolve_username
from sfu.config import Config
from sfu.errors import CredentialError, SfuError


class _BulkClientStub:
    """Client stub that completes a job on the first status read."""

    def __init__(self):
        self.calls: list[str] = []

    def probe(self):
        self.calls.append('probe')

    def describe(self, object_type):
        self.calls.append('describe')
        return {}

    def create_ingest_job(self, job_request):
        self.calls.append('create')
        return {'id': '750JOB', 'state': 'Open'}

    def upload_job_content(self, job_id, payload, timeout):
        self.calls.append('upload')

    def close_job(self, job_id, timeout):
        self.calls.append('close')
        return {'id': job_id, 'state': 'UploadComplete'}

    def get_job_status(self, job_id):
        self.calls.append('poll')
        return {'id': job_id, 'state': 'JobComplete', 'numberRecordsProcessed': 2,
                'numberRecordsFailed': 1, 'totalProcessingTime': 80}

    def get_successful_results(self, job_id):
        return 'sf__Id,sf__Created,Name\n001A,true,Acme\n'

    def get_failed_results(self, job_id):
        return 'sf__Id,sf__Error,Name\n,REQUIRED_FIELD_MISSING:Name,\n'


def _fail_connect(*args, **kwargs):
    raise AssertionError('connect must not be called')


def test_parser_bulk_arguments():
    args = cli_module.build_parser().parse_args(
        ['-u', 'me@example.com', 'bulk', '-s', 'Contact', '-o', 'upsert', '-e', 'Email__c', '-d', 'c.csv']
    )

    assert args.username == 'me@example.com'
    assert args.command == 'bulk'
    assert args.sobject == 'Contact'
    assert args.external_id == 'Email__c'


def test_parser_query_requires_one_source():
    with pytest.raises(SystemExit):
        cli_module.build_parser().parse_args(['query', '-q', 'SELECT Id FROM Account', '-f', 'q.soql'])


def test_parser_rest_method_is_case_insensitive():
    args = cli_module.build_parser().parse_args(['rest', '-m', 'get', '-r', '/services/data'])

    assert args.method == 'GET'


def test_main_rejects_upsert_without_key_before_connecting(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(cli_module, 'connect', _fail_connect)

    assert cli_module.main(['bulk', '-s', 'Contact', '-o', 'Upsert', '-d', 'c.csv']) == 1


def test_main_rejects_key_for_insert_before_connecting(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(cli_module, 'connect', _fail_connect)

    assert cli_module.main(['bulk', '-s', 'Contact', '-o', 'insert', '-e', 'Email__c', '-d', 'c.csv']) == 1


def test_main_rejects_payload_for_get_before_connecting(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(cli_module, 'connect', _fail_connect)

    assert cli_module.main(['rest', '-m', 'GET', '-r', '/services/data', '-p', 'body.json']) == 1


def test_resolve_username_prefers_argument_and_remembers_it(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv('SFU_STATE_FILE', str(tmp_path / 'last_username.txt'))
    config = Config(str(tmp_path / '.env'))

    assert resolve_username(None, config) is None
    assert resolve_username('me@example.com', config) == 'me@example.com'
    assert resolve_username(None, config) == 'me@example.com'
    assert resolve_username('other@example.com', config) == 'other@example.com'


def test_bulk_command_exports_result_files(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Write both result CSVs after a completed job."""

    monkeypatch.chdir(tmp_path)
    data_path = tmp_path / 'accounts.csv'
    data_path.write_text('Name\nAcme\n\n', encoding='utf-8')
    client = _BulkClientStub()

    exit_code = bulk_command(client, Config(str(tmp_path / '.env')), 'Account', 'insert', str(data_path))

    assert exit_code == 0
    assert client.calls == ['probe', 'describe', 'create', 'upload', 'close', 'poll']
    with open(tmp_path / 'bulk_api_successful_results.csv', newline='', encoding='utf-8') as f:
        assert list(csv.DictReader(f)) == [{'sf__Id': '001A', 'sf__Created': 'true', 'Name': 'Acme'}]
    with open(tmp_path / 'bulk_api_failed_results.csv', newline='', encoding='utf-8') as f:
        assert list(csv.DictReader(f))[0]['sf__Error'] == 'REQUIRED_FIELD_MISSING:Name'


def test_bulk_command_empty_file(tmp_path):
    data_path = tmp_path / 'empty.csv'
    data_path.write_text('\n', encoding='utf-8')

    with pytest.raises(SfuError, match='CSV file is empty'):
        bulk_command(_BulkClientStub(), Config(str(tmp_path / '.env')), 'Account', 'insert', str(data_path))


def test_main_init_writes_template_without_connecting(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setattr(cli_module, 'connect', _fail_connect)
    env_path = tmp_path / '.env'

    assert cli_module.main(['init', '--env-file', str(env_path)]) == 0
    assert 'SFU_AUTH=sf-cli' in env_path.read_text()


def test_main_init_keeps_existing_file_unless_forced(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setattr(cli_module, 'connect', _fail_connect)
    env_path = tmp_path / '.env'
    env_path.write_text('SFU_AUTH=password\n', encoding='utf-8')

    assert cli_module.main(['init', '--env-file', str(env_path)]) == 1
    assert env_path.read_text() == 'SFU_AUTH=password\n'

    assert cli_module.main(['init', '--env-file', str(env_path), '--force']) == 0
    assert 'SFU_AUTH=sf-cli' in env_path.read_text()


def test_connect_password_flow_reports_missing_keys(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Name the missing .env keys before attempting a login."""

    def _fail_login(*args, **kwargs):
        raise AssertionError('login must not be attempted')

    monkeypatch.setattr(commands_module, 'PasswordCredentialProvider', _fail_login)
    monkeypatch.setenv('SFU_STATE_FILE', str(tmp_path / 'last_username.txt'))
    monkeypatch.setenv('SFU_AUTH', 'password')
    monkeypatch.setenv('SF_PASSWORD', 'secret')
    monkeypatch.delenv('SF_SECURITY_TOKEN', raising=False)

    with pytest.raises(CredentialError, match='SF_SECURITY_TOKEN') as exc_info:
        connect(Config(str(tmp_path / '.env')), 'me@example.com')

    assert 'SF_USERNAME' not in str(exc_info.value)
    assert 'sfu init' in str(exc_info.value)
