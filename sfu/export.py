"""
Export Module

Flattens records and writes them to CSV or JSON files.
"""
import csv
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


logger = logging.getLogger(__name__)

QUERY_RESULTS_FILE = 'query_results.csv'
REST_RESPONSE_FILE = 'rest_api_response.json'
REST_RESULTS_FILE = 'rest_api_results.csv'
TRACKED_CHANGES_FILE = 'tracked_changes.csv'
PACKAGE_XML_FILE = 'package.xml'
BULK_SUCCESS_FILE = 'bulk_api_successful_results.csv'
BULK_FAILED_FILE = 'bulk_api_failed_results.csv'


def flatten_record(record: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten one API record for tabular output.

    Drops the 'attributes' entry. A nested object with a Name (such as
    LastModifiedBy) collapses to that name; other nested values are
    serialized as JSON.
    """
    flat = {}
    for key, value in record.items():
        if key == 'attributes':
            continue
        if isinstance(value, dict):
            if 'Name' in value:
                flat[key] = value.get('Name') or 'N/A'
            else:
                flat[key] = json.dumps({k: v for k, v in value.items() if k != 'attributes'})
        elif isinstance(value, list):
            flat[key] = json.dumps(value)
        else:
            flat[key] = value
    return flat


def _columns(rows: List[Dict[str, Any]]) -> List[str]:
    columns: List[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    return columns


def write_records_csv(records: Iterable[Dict[str, Any]], path: str,
                      flatten: bool = True) -> Optional[Path]:
    """
    Write records to a CSV file.

    Args:
        records: Records to write
        path: Output file
        flatten: Flatten nested API values first

    Returns:
        Path written, or None if there were no records
    """
    rows = [flatten_record(r) if flatten else dict(r) for r in records if isinstance(r, dict)]
    if not rows:
        logger.info("No records to write to %s", path)
        return None

    output = Path(path)
    with open(output, 'w', newline='', encoding='utf-8') as f:
        writer = csv.DictWriter(f, fieldnames=_columns(rows), restval='')
        writer.writeheader()
        writer.writerows(rows)
    logger.info("Wrote %d records to %s", len(rows), output)
    return output


def write_json(data: Any, path: str) -> Path:
    """Write data as indented JSON."""
    output = Path(path)
    with open(output, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, default=str)
    return output


def write_text(text: str, path: str) -> Path:
    output = Path(path)
    output.write_text(text, encoding='utf-8')
    return output
