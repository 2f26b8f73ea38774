"""Condition evaluation for condition nodes.

Evaluates a condition node's operator against a value resolved from the event
payload (FIELD conditions) or from an HTTP response (HTTP_REQUEST conditions)
and selects the outgoing edges of the chosen branch.

Supported operators:
- EQUALS: string-cast equality
- NOT_EQUALS: string-cast inequality
- CONTAINS: string-cast substring test (subject contains expected)
- GREATER_THAN: numeric comparison, False if either side is not a number
- LESS_THAN: numeric comparison, False if either side is not a number

Unknown operators evaluate to False.
"""

import json
import math
from typing import Any, Dict, List, Optional

from constants import (
    HANDLE_NO,
    HANDLE_YES,
    OP_CONTAINS,
    OP_EQUALS,
    OP_GREATER_THAN,
    OP_LESS_THAN,
    OP_NOT_EQUALS,
)
from core.logging import get_logger
from models.flow import ConditionData, Edge, HttpConditionConfig
from .exceptions import ExecutionError, ValidationError
from .http import HttpSender
from .paths import (
    get_nested_value,
    interpolate_variables,
    resolve_field,
    strip_data_prefix,
    to_display_string,
)

logger = get_logger(__name__)


OPERATOR_SYMBOLS: Dict[str, str] = {
    OP_EQUALS: "==",
    OP_NOT_EQUALS: "!=",
    OP_CONTAINS: "contains",
    OP_GREATER_THAN: ">",
    OP_LESS_THAN: "<",
}


def evaluate_condition(condition: ConditionData, payload: Dict[str, Any]) -> bool:
    """Evaluate a FIELD condition against the event payload.

    Args:
        condition: Condition node data (field, operator, value)
        payload: Event payload (``event.data``)

    Returns:
        True if the condition matches, False otherwise (including a blank
        field or a field missing from the payload)
    """
    if not condition.field or not condition.field.strip():
        logger.info("Condition field is empty", result=False)
        return False

    field_path = strip_data_prefix(condition.field)
    actual = resolve_field(payload, condition.field)

    if actual is None:
        logger.info("Condition field not found in payload", field=field_path, result=False)
        return False

    result = evaluate_operator(condition.operator, actual, condition.value)
    logger.info("Condition evaluated",
                field=field_path,
                operator=OPERATOR_SYMBOLS.get(condition.operator, condition.operator),
                expected=condition.value,
                actual=actual,
                result=result)
    return result


def evaluate_operator(operator: Optional[str], actual: Any, expected: Any) -> bool:
    """Apply a single operator. Never raises."""
    if operator == OP_EQUALS:
        return to_display_string(actual) == to_display_string(expected)

    elif operator == OP_NOT_EQUALS:
        return to_display_string(actual) != to_display_string(expected)

    elif operator == OP_CONTAINS:
        return to_display_string(expected) in to_display_string(actual)

    elif operator == OP_GREATER_THAN:
        return _numeric_compare(actual, expected, lambda a, b: a > b)

    elif operator == OP_LESS_THAN:
        return _numeric_compare(actual, expected, lambda a, b: a < b)

    logger.warning("Unknown operator", operator=operator, result=False)
    return False


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _numeric_compare(actual: Any, expected: Any, comparator) -> bool:
    a = _to_number(actual)
    b = _to_number(expected)
    if a is None or b is None:
        return False
    return comparator(a, b)


def branch_handle(result: bool) -> str:
    return HANDLE_YES if result else HANDLE_NO


def select_branch_edges(edges: List[Edge], result: bool) -> List[Edge]:
    """Edges whose handle matches the evaluated branch, in edge-list order."""
    handle = branch_handle(result)
    return [e for e in edges if e.source_handle == handle]


# =============================================================================
# HTTP-BASED CONDITIONS
# =============================================================================

async def evaluate_http_condition(config: HttpConditionConfig,
                                  payload: Dict[str, Any],
                                  http: HttpSender) -> bool:
    """Evaluate an HTTP_REQUEST condition.

    Calls the configured endpoint (URL and body templated against the
    payload), parses the response body as a JSON object and resolves
    ``responseField`` against it. The HTTP status is available to the
    condition as ``status``. A non-2xx status is not an error.

    Raises:
        ValidationError: URL or response field not configured
        ExecutionError: Transport failure, timeout, or a response body that
            is not a JSON object
    """
    if not config.url:
        raise ValidationError("HTTP condition URL not configured", field="url")
    if not config.response_field or not config.response_field.strip():
        raise ValidationError("HTTP condition response field not configured", field="responseField")

    method = (config.method or "GET").upper()
    url = interpolate_variables(config.url, payload)
    headers = {"Content-Type": "application/json", **config.headers}
    content = None
    if config.body is not None:
        content = interpolate_variables(json.dumps(config.body), payload)

    response = await http.request(method, url, headers=headers, content=content)
    document = _response_document(response.status_code, response.text)

    actual = get_nested_value(document, config.response_field.strip())
    if actual is None:
        logger.info("Response field not found", response_field=config.response_field,
                    status=response.status_code, result=False)
        return False

    result = evaluate_operator(config.operator, actual, config.value)
    logger.info("HTTP condition evaluated",
                url=url,
                status=response.status_code,
                response_field=config.response_field,
                operator=OPERATOR_SYMBOLS.get(config.operator, config.operator),
                expected=config.value,
                actual=actual,
                result=result)
    return result


def _response_document(status: int, text: str) -> Dict[str, Any]:
    if not text.strip():
        return {"status": status}
    try:
        body = json.loads(text)
    except ValueError as e:
        raise ExecutionError(f"HTTP condition response is not JSON (status {status})") from e
    if not isinstance(body, dict):
        raise ExecutionError(f"HTTP condition response is not a JSON object (status {status})")
    return {"status": status, **body}
