"""
SOQL Query Module

Runs queries against the standard or Tooling API and follows pagination.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .errors import TransportError


logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    """All records of a query plus timing and optional explain plans."""

    records: List[Dict[str, Any]]
    execution_ms: float
    explain_plans: Optional[List[Dict[str, Any]]] = None
    total_size: int = 0


def collect_pages(client, first_page: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Follow nextRecordsUrl until the query reports done."""
    page = first_page
    records = list(page.get('records') or [])
    while not page.get('done', True) and page.get('nextRecordsUrl'):
        page = client.query_more(page['nextRecordsUrl'])
        records.extend(page.get('records') or [])
    return records


def run_explain(client, soql: str) -> List[Dict[str, Any]]:
    """
    Get explain plans for a query. Failures are logged and yield no plans.
    """
    try:
        result = client.explain(soql)
    except TransportError as e:
        logger.warning("Error running Explain Plan: %s", e)
        return []
    if isinstance(result, dict) and isinstance(result.get('plans'), list):
        return result['plans']
    return [result] if result else []


def run_query(client, soql: str, tooling: bool = False, explain: bool = False) -> QueryResult:
    """
    Execute a SOQL query and return every record.

    Args:
        client: SalesforceClient
        soql: Query string
        tooling: Query the Tooling API instead of the standard API
        explain: Also fetch explain plans (standard API only)

    Returns:
        QueryResult
    """
    soql = soql.strip()
    if not soql:
        raise ValueError("SOQL query is empty.")

    explain_plans = None
    if explain and not tooling:
        explain_plans = run_explain(client, soql)

    started = time.perf_counter()
    first_page = client.query_page(soql, tooling=tooling)
    records = collect_pages(client, first_page)
    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info("Query returned %d records in %.2f ms", len(records), elapsed_ms)

    return QueryResult(
        records=records,
        execution_ms=elapsed_ms,
        explain_plans=explain_plans,
        total_size=first_page.get('totalSize', len(records)),
    )
