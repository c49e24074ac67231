"""Message templates for alert titles and descriptions."""

from typing import Any, Callable, Dict, Optional, Tuple

from .types import AlertType


def _motion(data: Dict[str, Any]) -> str:
    zone = data.get("zone")
    return f"Movement detected in {zone}" if zone else "Movement detected in frame"


def _audio(data: Dict[str, Any]) -> str:
    level = data.get("level")
    level_text = f"{round(level)}dB" if level else "elevated"
    pattern = data.get("pattern") or "noise"
    return f"{pattern} detected at {level_text}"


def _person(data: Dict[str, Any]) -> str:
    count = data.get("count") or 1
    suffix = "s" if count > 1 else ""
    return f"{count} person{suffix} detected in frame"


def _animal(data: Dict[str, Any]) -> str:
    kind = data.get("type")
    return f"{kind} detected" if kind else "Animal detected in frame"


def _inactivity(data: Dict[str, Any]) -> str:
    minutes = data.get("minutes")
    minutes_text = f"{minutes:g}" if isinstance(minutes, (int, float)) else "extended"
    return f"No activity detected for {minutes_text} minutes"


def _intrusion(data: Dict[str, Any]) -> str:
    count = data.get("count")
    count_text = count if count is not None else "multiple"
    allowed = data.get("allowed") or 0
    return f"{count_text} persons detected ({allowed} allowed)"


def _dangerous_animal(data: Dict[str, Any]) -> str:
    kind = data.get("type")
    return f"Potentially dangerous: {kind}" if kind else "Dangerous animal detected"


def _subject_match(data: Dict[str, Any]) -> str:
    name = data.get("name")
    return f"{name} detected" if name else "Registered subject detected"


def _system(data: Dict[str, Any]) -> str:
    return data.get("message") or "System notification"


DESCRIPTIONS: Dict[AlertType, Callable[[Dict[str, Any]], str]] = {
    AlertType.MOTION: _motion,
    AlertType.AUDIO: _audio,
    AlertType.PERSON: _person,
    AlertType.ANIMAL: _animal,
    AlertType.INACTIVITY: _inactivity,
    AlertType.INTRUSION: _intrusion,
    AlertType.DANGEROUS_ANIMAL: _dangerous_animal,
    AlertType.SUBJECT_MATCH: _subject_match,
    AlertType.SYSTEM: _system,
}


def render(
    alert_type: AlertType,
    metadata: Optional[Dict[str, Any]] = None,
    message: Optional[str] = None,
    description: Optional[str] = None,
) -> Tuple[str, str]:
    """
    Build (message, description) for an alert.

    Explicit message/description arguments win over the template.
    """
    data = metadata or {}
    title = message or alert_type.display_name
    body = description or DESCRIPTIONS[alert_type](data)
    return title, body
