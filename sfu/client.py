"""
Salesforce Client Wrapper

Wraps a simple-salesforce session created from existing credentials and
exposes the calls used by the query, REST, Apex, change tracking and Bulk
API commands.
"""
import logging
from typing import Any, Dict, Optional

import requests
from simple_salesforce import Salesforce
from simple_salesforce.exceptions import SalesforceError

from .auth import Credentials
from .errors import TransportError


logger = logging.getLogger(__name__)

INGEST_PATH = 'jobs/ingest'
REQUEST_TIMEOUT_SECONDS = 30
RESULTS_TIMEOUT_SECONDS = 30


def _error_detail(response: requests.Response) -> str:
    """Extract the Salesforce error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason or ''
    if isinstance(body, list) and body and isinstance(body[0], dict):
        return '; '.join(f"{item.get('errorCode', 'ERROR')}: {item.get('message', '')}" for item in body)
    if isinstance(body, dict) and 'message' in body:
        return str(body['message'])
    return str(body)


class SalesforceClient:
    """Wrapper around SimpleSalesforce bound to an existing session."""

    def __init__(self, credentials: Credentials, sf: Optional[Salesforce] = None):
        """
        Initialize the client.

        Args:
            credentials: Access token, instance URL and API version
            sf: Optional pre-built Salesforce instance (used by tests)
        """
        self.credentials = credentials
        self.sf = sf or Salesforce(
            instance_url=credentials.instance_url,
            session_id=credentials.access_token,
            version=credentials.api_version,
        )
        self._object_cache: Dict[str, Dict[str, Any]] = {}

    @property
    def api_version(self) -> str:
        return self.credentials.api_version

    # ------------------------------------------------------------------
    # Raw HTTP

    def _url(self, resource: str) -> str:
        if resource.startswith('http://') or resource.startswith('https://'):
            return resource
        if resource.startswith('/'):
            return self.credentials.instance_url.rstrip('/') + resource
        return self.sf.base_url + resource

    def request(self, method: str, resource: str, *, params: Optional[Dict[str, Any]] = None,
                json_body: Any = None, data: Optional[bytes] = None,
                headers: Optional[Dict[str, str]] = None,
                timeout: float = REQUEST_TIMEOUT_SECONDS) -> requests.Response:
        """
        Issue an authenticated request through the simple-salesforce session.

        Args:
            method: HTTP method
            resource: Absolute URL, instance-relative path ('/services/...')
                or path relative to the versioned data API ('jobs/ingest')
            params: Query string parameters
            json_body: JSON body for POST/PATCH
            data: Raw body (takes precedence over json_body)
            headers: Extra headers merged over the session headers
            timeout: Request timeout in seconds

        Returns:
            The successful response

        Raises:
            TransportError: On network failure or any non-2xx status
        """
        merged_headers = dict(self.sf.headers)
        if headers:
            merged_headers.update(headers)

        url = self._url(resource)
        logger.debug("%s %s", method, url)
        try:
            response = self.sf.session.request(
                method, url,
                params=params,
                json=json_body if data is None else None,
                data=data,
                headers=merged_headers,
                timeout=timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {resource} failed: {e}", resource=resource)

        if response.status_code >= 300:
            raise TransportError(
                f"{method} {resource} returned HTTP {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
                resource=resource,
            )
        return response

    def request_json(self, method: str, resource: str, **kwargs) -> Any:
        """Issue a request and decode the JSON body (None for empty bodies)."""
        response = self.request(method, resource, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {resource} returned invalid JSON: {e}", resource=resource)

    # ------------------------------------------------------------------
    # Metadata and queries

    def probe(self):
        """Cheap liveness check against the Account object."""
        try:
            self.sf.query('SELECT Id FROM Account LIMIT 1', timeout=REQUEST_TIMEOUT_SECONDS)
        except (SalesforceError, requests.RequestException) as e:
            raise TransportError(f"Connection test failed: {e}", resource='query')

    def describe(self, object_type: str) -> Dict[str, Any]:
        """
        Get metadata about a Salesforce object.

        Args:
            object_type: Salesforce object type

        Returns:
            Object describe result

        Raises:
            TransportError: If the object does not exist or is not accessible
        """
        if object_type not in self._object_cache:
            try:
                self._object_cache[object_type] = self.request_json(
                    'GET', f'sobjects/{object_type}/describe/', timeout=REQUEST_TIMEOUT_SECONDS,
                )
            except TransportError as e:
                raise TransportError(
                    f"Invalid or inaccessible object \"{object_type}\": {e}",
                    status_code=e.status_code,
                    resource=f"sobjects/{object_type}/describe",
                )
        return self._object_cache[object_type]

    def query_page(self, soql: str, tooling: bool = False) -> Dict[str, Any]:
        """Run a query and return the first page of results."""
        resource = 'tooling/query/' if tooling else 'query/'
        return self.request_json('GET', resource, params={'q': soql})

    def query_more(self, next_records_url: str) -> Dict[str, Any]:
        """Fetch the next page of a query from its nextRecordsUrl."""
        return self.request_json('GET', next_records_url)

    def explain(self, soql: str) -> Dict[str, Any]:
        """Get the query plan for a SOQL statement."""
        return self.request_json('GET', 'query/', params={'explain': soql})

    def execute_anonymous(self, apex_code: str) -> Dict[str, Any]:
        """Compile and run anonymous Apex through the Tooling API."""
        return self.request_json('GET', 'tooling/executeAnonymous/', params={'anonymousBody': apex_code})

    def get_user_id(self, username: str) -> str:
        """
        Resolve a username to a User Id.

        Raises:
            TransportError: If the query fails
            LookupError: If no such user exists
        """
        escaped = username.replace('\\', '\\\\').replace("'", "\\'")
        result = self.query_page(f"SELECT Id FROM User WHERE Username = '{escaped}' LIMIT 1")
        records = result.get('records', [])
        if not records:
            raise LookupError(f'User with username "{username}" not found.')
        return records[0]['Id']

    # ------------------------------------------------------------------
    # Bulk API 2.0 ingest

    def create_ingest_job(self, job_request: Dict[str, Any]) -> Dict[str, Any]:
        """Create an ingest job and return its job info."""
        return self.request_json('POST', INGEST_PATH, json_body=job_request,
                                 timeout=REQUEST_TIMEOUT_SECONDS)

    def upload_job_content(self, job_id: str, payload: str, timeout: float):
        """Upload the CSV payload for an open job."""
        self.request(
            'PUT', f'{INGEST_PATH}/{job_id}/batches',
            data=payload.encode('utf-8'),
            headers={'Content-Type': 'text/csv'},
            timeout=timeout,
        )

    def close_job(self, job_id: str, timeout: float) -> Dict[str, Any]:
        """Mark the job UploadComplete so Salesforce starts processing it."""
        return self.request_json(
            'PATCH', f'{INGEST_PATH}/{job_id}',
            json_body={'state': 'UploadComplete'},
            timeout=timeout,
        )

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        return self.request_json('GET', f'{INGEST_PATH}/{job_id}', timeout=REQUEST_TIMEOUT_SECONDS)

    def get_successful_results(self, job_id: str) -> str:
        return self._get_results(job_id, 'successfulResults')

    def get_failed_results(self, job_id: str) -> str:
        return self._get_results(job_id, 'failedResults')

    def _get_results(self, job_id: str, kind: str) -> str:
        response = self.request(
            'GET', f'{INGEST_PATH}/{job_id}/{kind}/',
            headers={'Accept': 'text/csv'},
            timeout=RESULTS_TIMEOUT_SECONDS,
        )
        response.encoding = response.encoding or 'utf-8'
        logger.debug("%s for job %s: %d bytes", kind, job_id, len(response.content))
        return response.text
