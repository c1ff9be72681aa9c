"""Tests for change tracking, package.xml generation and file export."""

from __future__ import annotations

import csv
import json

import pytest

from sfu.export import flatten_record, write_json, write_records_csv
from sfu.track import build_package_xml, build_source_member_query, track_changes


class _TrackingClientStub:
    """Client stub for SourceMember queries."""

    def __init__(self, records):
        self.records = records
        self.queries: list[tuple[str, bool]] = []

    def get_user_id(self, username):
        return '005USER'

    def query_page(self, soql, tooling=False):
        self.queries.append((soql, tooling))
        return {'done': True, 'records': self.records}

    def query_more(self, next_records_url):
        raise AssertionError('no further pages expected')


def test_source_member_query_filters():
    soql = build_source_member_query('2024-05-01', '005USER')

    assert soql.startswith('SELECT Id, LastModifiedBy.Name, MemberIdOrName')
    assert "WHERE LastModifiedDate >= 2024-05-01T00:00:00Z AND LastModifiedById = '005USER'" in soql
    assert soql.endswith('ORDER BY LastModifiedDate DESC')


def test_source_member_query_without_filters():
    soql = build_source_member_query()

    assert 'WHERE' not in soql


def test_source_member_query_rejects_bad_date():
    with pytest.raises(ValueError):
        build_source_member_query("2024-05-01' OR 1=1")


def test_track_changes_uses_tooling_and_user_filter():
    client = _TrackingClientStub([{'MemberType': 'ApexClass', 'MemberName': 'Foo'}])

    records = track_changes(client, since='2024-05-01', username='dev@example.com')

    assert len(records) == 1
    soql, tooling = client.queries[0]
    assert tooling is True
    assert "LastModifiedById = '005USER'" in soql


def test_build_package_xml_groups_members_by_type():
    records = [
        {'MemberType': 'ApexClass', 'MemberName': 'Foo'},
        {'MemberType': 'CustomObject', 'MemberName': 'Invoice__c'},
        {'MemberType': 'ApexClass', 'MemberName': 'Bar'},
        {'MemberType': 'ApexClass', 'MemberName': 'Foo'},
        {'MemberType': 'Profile', 'MemberName': None},
    ]

    xml = build_package_xml(records, '60.0')

    assert xml == (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<Package xmlns="http://soap.sforce.com/2006/04/metadata">\n'
        '    <types>\n'
        '        <members>Foo</members>\n'
        '        <members>Bar</members>\n'
        '        <name>ApexClass</name>\n'
        '    </types>\n'
        '    <types>\n'
        '        <members>Invoice__c</members>\n'
        '        <name>CustomObject</name>\n'
        '    </types>\n'
        '    <version>60.0</version>\n'
        '</Package>\n'
    )


def test_build_package_xml_escapes_names():
    xml = build_package_xml([{'MemberType': 'Layout', 'MemberName': 'Account-Sales & Service'}])

    assert '<members>Account-Sales &amp; Service</members>' in xml


def test_flatten_record_collapses_nested_values():
    record = {
        'attributes': {'type': 'SourceMember'},
        'Id': '0MZA',
        'LastModifiedBy': {'attributes': {'type': 'User'}, 'Name': 'Dev User'},
        'Owner': {'attributes': {'type': 'User'}, 'Name': None},
        'BillingAddress': {'city': 'Paris'},
        'Tags': ['a', 'b'],
        'IsNewMember': False,
    }

    assert flatten_record(record) == {
        'Id': '0MZA',
        'LastModifiedBy': 'Dev User',
        'Owner': 'N/A',
        'BillingAddress': '{"city": "Paris"}',
        'Tags': '["a", "b"]',
        'IsNewMember': False,
    }


def test_write_records_csv_uses_union_of_columns(tmp_path):
    path = tmp_path / 'out.csv'

    written = write_records_csv([{'Id': '1', 'Name': 'A'}, {'Id': '2', 'Phone': '555'}], str(path))

    assert written == path
    with open(path, newline='', encoding='utf-8') as f:
        rows = list(csv.DictReader(f))
    assert rows == [
        {'Id': '1', 'Name': 'A', 'Phone': ''},
        {'Id': '2', 'Name': '', 'Phone': '555'},
    ]


def test_write_records_csv_skips_empty(tmp_path):
    path = tmp_path / 'out.csv'

    assert write_records_csv([], str(path)) is None
    assert not path.exists()


def test_write_json(tmp_path):
    path = write_json({'a': [1, 2]}, str(tmp_path / 'out.json'))

    assert json.loads(path.read_text()) == {'a': [1, 2]}
