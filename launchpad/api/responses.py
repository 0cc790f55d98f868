from typing import Any, Dict

from launchpad.core.models.base import utcnow


def _timestamp() -> str:
    return utcnow().isoformat()


def envelope(data: Any) -> Dict[str, Any]:
    """Success wrapper shared by every endpoint"""
    return {"success": True, "data": data, "timestamp": _timestamp()}


def error_envelope(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message, "timestamp": _timestamp()}
