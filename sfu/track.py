"""
Change Tracking Module

Lists source-tracked metadata changes (SourceMember) and builds a
package.xml manifest for them.
"""
import logging
from collections import OrderedDict
from datetime import date
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from .query import collect_pages


logger = logging.getLogger(__name__)

SOURCE_MEMBER_FIELDS = [
    'Id',
    'LastModifiedBy.Name',
    'MemberIdOrName',
    'MemberType',
    'MemberName',
    'RevisionNum',
    'RevisionCounter',
    'IsNameObsolete',
    'LastModifiedById',
    'IsNewMember',
    'ChangedBy',
]


def build_source_member_query(since: Optional[str] = None, user_id: Optional[str] = None) -> str:
    """
    Build the SourceMember query.

    Args:
        since: Date (YYYY-MM-DD) to track changes from
        user_id: Only changes last modified by this User Id

    Raises:
        ValueError: If since is not a YYYY-MM-DD date
    """
    if since:
        since = date.fromisoformat(since).isoformat()
    soql = f"SELECT {', '.join(SOURCE_MEMBER_FIELDS)} FROM SourceMember"
    conditions = []
    if since:
        conditions.append(f"LastModifiedDate >= {since}T00:00:00Z")
    if user_id:
        conditions.append(f"LastModifiedById = '{user_id}'")
    if conditions:
        soql += ' WHERE ' + ' AND '.join(conditions)
    return soql + ' ORDER BY LastModifiedDate DESC'


def track_changes(client, since: Optional[str] = None,
                  username: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Fetch source-tracked changes from the Tooling API.

    Args:
        client: SalesforceClient
        since: Date (YYYY-MM-DD) to track changes from
        username: Username of the last modifying user

    Returns:
        SourceMember records, newest first
    """
    user_id = client.get_user_id(username) if username else None
    soql = build_source_member_query(since, user_id)
    records = collect_pages(client, client.query_page(soql, tooling=True))
    logger.info("Found %d tracked changes", len(records))
    return records


def build_package_xml(records: List[Dict[str, Any]], api_version: str = '60.0') -> str:
    """Group tracked members by metadata type into a package.xml manifest."""
    types: 'OrderedDict[str, List[str]]' = OrderedDict()
    for record in records:
        member_type = record.get('MemberType')
        member_name = record.get('MemberName')
        if not member_type or not member_name:
            continue
        members = types.setdefault(member_type, [])
        if member_name not in members:
            members.append(member_name)

    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<Package xmlns="http://soap.sforce.com/2006/04/metadata">',
    ]
    for member_type, members in types.items():
        lines.append('    <types>')
        for member in members:
            lines.append(f'        <members>{escape(member)}</members>')
        lines.append(f'        <name>{escape(member_type)}</name>')
        lines.append('    </types>')
    lines.append(f'    <version>{escape(api_version)}</version>')
    lines.append('</Package>')
    return '\n'.join(lines) + '\n'
