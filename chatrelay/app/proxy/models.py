from __future__ import annotations

from typing import Any, Dict, List

RESTRICTED_MODEL_PREFIXES = ("gpt-4", "chatgpt-4o", "o1", "o3")
# Always listed, even though it shares the restricted "gpt-4" prefix.
ALWAYS_ALLOWED_MODEL_PREFIX = "gpt-4o-mini"


def is_restricted_model(model_id: str) -> bool:
    if model_id.startswith(ALWAYS_ALLOWED_MODEL_PREFIX):
        return False
    return model_id.startswith(RESTRICTED_MODEL_PREFIXES)


def filter_models(models: List[Any]) -> List[Any]:
    kept = []
    for model in models:
        model_id = model.get("id") if isinstance(model, dict) else None
        if isinstance(model_id, str) and is_restricted_model(model_id):
            continue
        kept.append(model)
    return kept


def filter_model_list(payload: Dict[str, Any]) -> bool:
    """Drop restricted models from an OpenAI ``/v1/models`` payload in place."""
    data = payload.get("data")
    if not isinstance(data, list):
        return False
    kept = filter_models(data)
    if len(kept) == len(data):
        return False
    payload["data"] = kept
    return True
