# autoflow/services/sanitizer.py
import copy
import re
import uuid
import logging
from typing import Any, Dict, Mapping, Optional, Union

from autoflow.core.errors import ValidationError
from autoflow.models.state import Document

logger = logging.getLogger("sanitizer")

_UUID4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

# assigned by the downstream platform on import
_PLATFORM_IDENTITY_KEYS = ("id", "versionId")

DEFAULT_WORKFLOW_NAME = "Untitled Workflow"
DEFAULT_EXECUTION_ORDER = "v1"


def is_valid_uuid4(value: Any) -> bool:
    return isinstance(value, str) and bool(_UUID4_RE.match(value))


def new_node_id() -> str:
    return str(uuid.uuid4())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_position(value: Any) -> bool:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return False
    return all(_is_number(v) for v in value)


def _text(value: Any) -> Optional[str]:
    """Non-empty string form of ``value``, or None when it has none."""
    if isinstance(value, str):
        return value or None
    if _is_number(value):
        return str(value)
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): v for k, v in value.items()}


def _sanitize_node(node: Any, index: int) -> Dict[str, Any]:
    if not isinstance(node, Mapping):
        node = {}
    fixed = _as_dict(node)

    if not is_valid_uuid4(fixed.get("id")):
        logger.debug("Node %d: replacing id %r", index, fixed.get("id"))
        fixed["id"] = new_node_id()

    fixed["name"] = _text(fixed.get("name")) or f"Node {index + 1}"

    node_type = _text(fixed.get("type"))
    if node_type is None:
        raise ValidationError(f"node {fixed['name']} missing type field")
    fixed["type"] = node_type

    if not isinstance(fixed.get("parameters"), Mapping):
        logger.debug("Node %s: replacing parameters %r", fixed["name"], fixed.get("parameters"))
    fixed["parameters"] = _as_dict(fixed.get("parameters"))

    if not _is_position(fixed.get("position")):
        logger.debug("Node %s: default position for index %d", fixed["name"], index)
        fixed["position"] = [100 + index * 200, 300]
    elif isinstance(fixed["position"], tuple):
        fixed["position"] = list(fixed["position"])

    if not _is_number(fixed.get("typeVersion")):
        fixed["typeVersion"] = 1

    return fixed


def sanitize(raw: Union[Mapping[str, Any], Document]) -> Document:
    """
    Normalize generated or uploaded workflow JSON into an importable Document.

    Each repair only fires when its defect is present, so running this on its
    own output changes nothing. Two defects are refused rather than repaired:
    a missing ``nodes`` array and a node without ``type``. Everything else the
    Document model types is coerced or defaulted, so validation cannot fail.
    The input is never mutated; fresh node ids are the only nondeterminism.
    """
    if isinstance(raw, Document):
        data: Dict[str, Any] = raw.to_export()
    elif isinstance(raw, Mapping):
        data = _as_dict(copy.deepcopy(dict(raw)))
    else:
        raise ValidationError("missing nodes array")

    data["name"] = _text(data.get("name")) or DEFAULT_WORKFLOW_NAME

    nodes = data.get("nodes")
    if not isinstance(nodes, list):
        raise ValidationError("missing nodes array")

    data["connections"] = _as_dict(data.get("connections"))

    if not isinstance(data.get("active"), bool):
        data["active"] = False

    settings = _as_dict(data.get("settings"))
    if not settings.get("executionOrder"):
        settings["executionOrder"] = DEFAULT_EXECUTION_ORDER
    data["settings"] = settings

    data["nodes"] = [_sanitize_node(node, i) for i, node in enumerate(nodes)]

    for key in _PLATFORM_IDENTITY_KEYS:
        data.pop(key, None)
    meta = data.get("meta")
    if isinstance(meta, Mapping) and "instanceId" in meta:
        data["meta"] = {k: v for k, v in meta.items() if k != "instanceId"}

    data["pinData"] = _as_dict(data.get("pinData"))
    tags = data.get("tags")
    data["tags"] = list(tags) if isinstance(tags, (list, tuple)) else []

    return Document.model_validate(data)
