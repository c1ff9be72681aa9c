"""
Commands Module

Connection setup and the five operations shared by the flag-driven CLI
and the interactive menu.
"""
import json
import logging
from pathlib import Path
from typing import Any, Optional

from .apex import execute_anonymous
from .auth import PasswordCredentialProvider, SfCliCredentialProvider
from .bulk import BulkJobOrchestrator, JobOutcome, JobSpec, STATE_JOB_COMPLETE
from .client import SalesforceClient
from .config import AUTH_PASSWORD, Config
from .display import (
    console, display_apex_result, display_explain_plans, display_info,
    display_job_outcome, display_json, display_records, display_success,
)
from .errors import CredentialError, SfuError
from .export import (
    BULK_FAILED_FILE, BULK_SUCCESS_FILE, PACKAGE_XML_FILE, QUERY_RESULTS_FILE,
    REST_RESPONSE_FILE, REST_RESULTS_FILE, TRACKED_CHANGES_FILE,
    write_json, write_records_csv, write_text,
)
from .query import run_query
from .rest import RecordList, PagedRecords, call_rest, response_body
from .track import build_package_xml, track_changes


logger = logging.getLogger(__name__)

LARGE_PAYLOAD_BYTES = 10 * 1024 * 1024


def resolve_username(explicit: Optional[str], config: Config) -> Optional[str]:
    """Pick the username from the command line, else the remembered one."""
    store = config.username_store()
    username = (explicit or '').strip() or store.load()
    if username:
        store.save(username)
    return username


def connect(config: Config, username: Optional[str] = None) -> SalesforceClient:
    """
    Build an authenticated client.

    Args:
        config: Loaded configuration
        username: Username from the command line, if any

    Returns:
        SalesforceClient

    Raises:
        CredentialError: If no username is known or credentials cannot be retrieved
    """
    username = resolve_username(username, config)
    if config.auth_method == AUTH_PASSWORD:
        valid, missing = config.validate(username)
        if not valid:
            raise CredentialError(
                f"Missing Salesforce credentials: {', '.join(missing)}. "
                "Run 'sfu init' to create a .env template."
            )
        provider = PasswordCredentialProvider(username, config.default_api_version)
    else:
        if not username:
            raise CredentialError(
                "Salesforce username is required. Use --username or set "
                f"{config.username_store().path}."
            )
        provider = SfCliCredentialProvider(username, default_api_version=config.default_api_version)

    credentials = provider.get_credentials()
    logger.info("Instance URL: %s", credentials.instance_url)
    logger.info("API Version: %s", credentials.api_version)
    client = SalesforceClient(credentials)
    display_success("Successfully connected to Salesforce!")
    return client


def init_command(config: Config, force: bool = False) -> int:
    """Write a .env template with the supported settings."""
    if config.exists and not force:
        raise SfuError(f"{config.env_path} already exists. Use --force to overwrite it.")
    path = config.create_template()
    display_success(f"Created {path}")
    display_info("Edit the file with your settings, then run sfu again.")
    return 0


def read_text_file(path: str, what: str) -> str:
    """Read a UTF-8 file that must not be empty."""
    try:
        text = Path(path).read_text(encoding='utf-8')
    except OSError as e:
        raise SfuError(f"Error reading {what} file: {e}")
    if not text.strip():
        raise SfuError(f"{what} file is empty.")
    return text


def query_command(client: SalesforceClient, soql: str, tooling: bool = False,
                  plan: bool = False) -> int:
    result = run_query(client, soql, tooling=tooling, explain=plan and not tooling)

    if result.explain_plans is not None:
        display_explain_plans(result.explain_plans)

    display_records(result.records, "Query Results")
    console.print(f"[green]Query execution time: {result.execution_ms} ms[/green]")

    if write_records_csv(result.records, QUERY_RESULTS_FILE):
        display_info(f"Results exported to {QUERY_RESULTS_FILE}")
    else:
        display_info("No records to export.")
    return 0


def rest_command(client: SalesforceClient, method: str, resource: str,
                 payload: Optional[Any] = None) -> int:
    response = call_rest(client, method, resource, payload)
    body = response_body(response)

    display_json(body, "REST API Response")
    write_json(body, REST_RESPONSE_FILE)
    display_info(f"Response exported to {REST_RESPONSE_FILE}")

    if method.upper() == 'GET' and isinstance(response, (RecordList, PagedRecords)):
        if write_records_csv(response.records, REST_RESULTS_FILE):
            display_info(f"Results exported to {REST_RESULTS_FILE}")
    return 0


def track_command(client: SalesforceClient, since: Optional[str] = None,
                  username: Optional[str] = None) -> int:
    records = track_changes(client, since=since, username=username)
    if not records:
        display_info("No changes found matching the criteria.")
        return 0

    display_records(records, "Tracked Changes")
    write_records_csv(records, TRACKED_CHANGES_FILE)
    write_text(build_package_xml(records, client.api_version), PACKAGE_XML_FILE)
    display_info(f"Results exported to {TRACKED_CHANGES_FILE} and {PACKAGE_XML_FILE}")
    return 0


def bulk_command(client: SalesforceClient, config: Config, sobject: str, operation: str,
                 data_path: str, external_id: Optional[str] = None) -> int:
    """Run a Bulk API 2.0 ingest job from a CSV file and export its results."""
    spec = JobSpec(
        target_entity=sobject,
        operation=operation,
        payload=read_text_file(data_path, 'CSV'),
        upsert_key_field=external_id or None,
    )
    if Path(data_path).stat().st_size > LARGE_PAYLOAD_BYTES:
        logger.warning("Large CSV file detected (>10MB). Upload may take time.")

    settings = config.bulk_settings()
    orchestrator = BulkJobOrchestrator(
        client,
        poll_interval_seconds=settings.poll_interval_seconds,
        max_poll_attempts=settings.max_poll_attempts,
        upload_timeout_seconds=settings.upload_timeout_seconds,
        close_timeout_seconds=settings.close_timeout_seconds,
    )
    outcome = orchestrator.run_job(spec)
    display_job_outcome(outcome)
    export_job_results(outcome)
    return 0 if outcome.state == STATE_JOB_COMPLETE else 1


def export_job_results(outcome: JobOutcome):
    if write_records_csv(outcome.accepted, BULK_SUCCESS_FILE, flatten=False):
        display_info(f"Successful results exported to {BULK_SUCCESS_FILE}")
    if write_records_csv(outcome.rejected, BULK_FAILED_FILE, flatten=False):
        display_info(f"Failed results exported to {BULK_FAILED_FILE}")


def apex_command(client: SalesforceClient, apex_code: str) -> int:
    result = execute_anonymous(client, apex_code)
    display_apex_result(result)
    return 0 if result.get('compiled') and result.get('success') else 1


def load_json_payload(path: str) -> Any:
    text = read_text_file(path, 'payload')
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise SfuError(f"Error reading payload file: {e}")
