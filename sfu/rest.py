"""
REST API Module

Calls arbitrary REST resources and normalizes the known response shapes.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .errors import SfuError


logger = logging.getLogger(__name__)

METHODS = ('GET', 'POST', 'PATCH', 'DELETE')
BODY_METHODS = ('POST', 'PATCH')

# Collection fields of the paginated payloads returned by the data,
# Connect and UI APIs
COLLECTION_KEYS = ('records', 'sobjects', 'elements', 'items', 'feedElements',
                   'users', 'groups', 'files', 'comments')


@dataclass
class RecordList:
    """Top-level JSON array."""

    records: List[Any]


@dataclass
class PagedRecords:
    """Object wrapping one collection field, possibly spread over pages."""

    key: str
    records: List[Any]
    pages: int = 1
    envelope: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SingleObject:
    """Any other JSON document (or no body at all)."""

    data: Optional[Any]

    @property
    def records(self) -> List[Any]:
        return [self.data] if self.data else []


RestResponse = Union[RecordList, PagedRecords, SingleObject]


def _next_page_url(page: Dict[str, Any]) -> Optional[str]:
    if page.get('nextPageUrl'):
        return page['nextPageUrl']
    if page.get('nextRecordsUrl') and not page.get('done', False):
        return page['nextRecordsUrl']
    return None


def classify_response(data: Any) -> RestResponse:
    """Map a decoded JSON body to one of the known response shapes."""
    if isinstance(data, list):
        return RecordList(records=data)
    if isinstance(data, dict):
        for key in COLLECTION_KEYS:
            if isinstance(data.get(key), list):
                envelope = {k: v for k, v in data.items() if k != key}
                return PagedRecords(key=key, records=list(data[key]), envelope=envelope)
    return SingleObject(data=data)


def validate_call(method: str, payload: Any = None) -> str:
    """
    Normalize and check the method/payload combination.

    Raises:
        SfuError: For unsupported methods or a payload on GET/DELETE
    """
    method = (method or '').strip().upper()
    if method not in METHODS:
        raise SfuError("Method must be GET, POST, PATCH, or DELETE.")
    if payload is not None and method not in BODY_METHODS:
        raise SfuError("Payload is only valid for POST or PATCH methods.")
    return method


def call_rest(client, method: str, resource: str, payload: Any = None) -> RestResponse:
    """
    Call a REST resource and, for GET, follow pagination to the end.

    Args:
        client: SalesforceClient
        method: GET, POST, PATCH or DELETE
        resource: Instance-relative URL (e.g. /services/data/v60.0/limits)
        payload: JSON body for POST/PATCH

    Returns:
        RecordList, PagedRecords or SingleObject
    """
    method = validate_call(method, payload)
    data = client.request_json(method, resource, json_body=payload)
    response = classify_response(data)

    if method != 'GET' or not isinstance(response, PagedRecords):
        return response

    page = data
    next_url = _next_page_url(page)
    while next_url:
        logger.debug("Fetching next page %s", next_url)
        page = client.request_json('GET', next_url) or {}
        response.records.extend(page.get(response.key) or [])
        response.pages += 1
        next_url = _next_page_url(page)

    logger.info("%s %s returned %d %s over %d page(s)", method, resource,
                len(response.records), response.key, response.pages)
    return response


def response_body(response: RestResponse) -> Any:
    """JSON-serializable body to show or save for a response."""
    if isinstance(response, SingleObject):
        return response.data
    return response.records
