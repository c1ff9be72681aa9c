"""
Anonymous Apex Module
"""
import logging
from typing import Any, Dict


logger = logging.getLogger(__name__)


def execute_anonymous(client, apex_code: str) -> Dict[str, Any]:
    """
    Compile and run a block of anonymous Apex.

    Args:
        client: SalesforceClient
        apex_code: Apex source

    Returns:
        Tooling API result with compiled, success, line, column,
        compileProblem, exceptionMessage and exceptionStackTrace
    """
    apex_code = apex_code.strip()
    if not apex_code:
        raise ValueError("Apex code is empty.")

    result = client.execute_anonymous(apex_code) or {}
    if not result.get('compiled'):
        logger.warning("Apex compile problem at line %s, column %s: %s",
                       result.get('line'), result.get('column'), result.get('compileProblem'))
    elif not result.get('success'):
        logger.warning("Apex execution failed: %s", result.get('exceptionMessage'))
    return result
