from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..core.logging import get_logger
from ..tools.exceptions import ConfigLoadError

logger = get_logger(name=__name__)

_ID_KEYS = ("knowledge_index_ids", "vectorStoreIds")


def read_knowledge_config(path: str | Path) -> dict[str, Any]:
    config_path = Path(path)
    try:
        payload = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigLoadError(f"Knowledge config not found at {config_path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigLoadError(f"Knowledge config at {config_path} is unreadable: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigLoadError(f"Knowledge config at {config_path} must be a JSON object")
    return payload


def load_knowledge_index_ids(path: str | Path | None) -> list[str]:
    """Return configured knowledge index ids, or an empty list when anything goes wrong."""
    if path is None:
        return []
    try:
        payload = read_knowledge_config(path)
    except ConfigLoadError as exc:
        logger.warning("knowledge_config_unavailable", path=str(path), error=str(exc))
        return []
    for key in _ID_KEYS:
        raw = payload.get(key)
        if raw is None:
            continue
        if not isinstance(raw, list):
            logger.warning("knowledge_config_invalid", path=str(path), key=key)
            return []
        ids = [str(item).strip() for item in raw if isinstance(item, str) and item.strip()]
        logger.info("knowledge_config_loaded", path=str(path), count=len(ids))
        return ids
    return []
