"""Centralized constants for flow graphs and the execution engine.

This module provides a single source of truth for node types, action types,
condition operators and engine limits shared by the models, the engine and
the persistence layer.
"""

from typing import FrozenSet

# =============================================================================
# NODE TYPES
# =============================================================================

NODE_TRIGGER = 'trigger'
NODE_CONDITION = 'condition'
NODE_ACTION = 'action'
NODE_END = 'end'

NODE_TYPES: FrozenSet[str] = frozenset([
    NODE_TRIGGER,
    NODE_CONDITION,
    NODE_ACTION,
    NODE_END,
])

# =============================================================================
# CONDITION NODES
# =============================================================================

# Edge handles on a condition node's outgoing edges
HANDLE_YES = 'yes'
HANDLE_NO = 'no'

CONDITION_HANDLES: FrozenSet[str] = frozenset([HANDLE_YES, HANDLE_NO])

# Where a condition reads its subject from
CONDITION_TYPE_FIELD = 'FIELD'
CONDITION_TYPE_HTTP = 'HTTP_REQUEST'

OP_EQUALS = 'EQUALS'
OP_NOT_EQUALS = 'NOT_EQUALS'
OP_CONTAINS = 'CONTAINS'
OP_GREATER_THAN = 'GREATER_THAN'
OP_LESS_THAN = 'LESS_THAN'

# Leading prefix a condition field may use to reference the payload root
DATA_PREFIX = 'data.'

# =============================================================================
# ACTION NODES
# =============================================================================

ACTION_LOG = 'LOG'
ACTION_HTTP_REQUEST = 'HTTP_REQUEST'
ACTION_SEND_EMAIL = 'SEND_EMAIL'
ACTION_CALL_FLOW = 'CALL_FLOW'

ACTION_TYPES: FrozenSet[str] = frozenset([
    ACTION_LOG,
    ACTION_HTTP_REQUEST,
    ACTION_SEND_EMAIL,
    ACTION_CALL_FLOW,
])

HTTP_METHODS: FrozenSet[str] = frozenset(['GET', 'POST', 'PUT', 'DELETE'])
DEFAULT_ACTION_HTTP_METHOD = 'POST'
DEFAULT_CONDITION_HTTP_METHOD = 'GET'

# =============================================================================
# ENGINE LIMITS
# =============================================================================

# Maximum CALL_FLOW nesting; depth 0 is the flow started by the webhook
MAX_FLOW_DEPTH = 5

# Hard timeout for outbound HTTP calls (milliseconds)
HTTP_TIMEOUT_MS = 30000

# =============================================================================
# EXECUTION LOG STATUS
# =============================================================================

STATUS_RUNNING = 'running'
STATUS_SUCCESS = 'success'
STATUS_ERROR = 'error'

EXECUTION_STATUSES: FrozenSet[str] = frozenset([
    STATUS_RUNNING,
    STATUS_SUCCESS,
    STATUS_ERROR,
])
