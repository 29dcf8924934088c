"""Model name mapping and the static model catalog."""

from __future__ import annotations

import copy
import json
import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

log = logging.getLogger("azure_proxy")

# Public OpenAI model name -> Azure deployment name.
DEFAULT_MODEL_MAPPER: Mapping[str, str] = MappingProxyType(
    {
        "gpt-3.5-turbo": "gpt_35",
        "gpt-4": "gpt_4",
        "gpt-4-32k": "gpt_4_32k",
    }
)

_MODEL_CATALOG: Dict[str, Any] = {
    "object": "list",
    "data": [
        {
            "id": "gpt-3.5-turbo",
            "object": "model",
            "created": 1677610602,
            "owned_by": "openai",
            "permission": [
                {
                    "id": "modelperm-M56FXnG1AsIr3SXq8BYPvXJA",
                    "object": "model_permission",
                    "created": 1679602088,
                    "allow_create_engine": False,
                    "allow_sampling": True,
                    "allow_logprobs": True,
                    "allow_search_indices": False,
                    "allow_view": True,
                    "allow_fine_tuning": False,
                    "organization": "*",
                    "group": None,
                    "is_blocking": False,
                }
            ],
            "root": "gpt-3.5-turbo",
            "parent": None,
        }
    ],
}


def build_model_mapper(overrides: Optional[Mapping[str, str]] = None) -> Mapping[str, str]:
    """
    Build the read-only alias table used for the lifetime of the process.

    Overrides win over the built-in entries.
    """
    merged = dict(DEFAULT_MODEL_MAPPER)
    if overrides:
        merged.update(overrides)
        log.info("Model mapper overrides applied: %s", sorted(overrides))
    return MappingProxyType(merged)


def resolve_deployment(mapper: Mapping[str, str], model: Any) -> str:
    """
    Map a public model name to its deployment; unknown names pass through unchanged.

    null, false, 0 and "" mean no model. Other non-string values are looked up and
    passed on in their JSON spelling (true -> "true", 4 -> "4").
    """
    if model in (None, False, ""):
        return ""
    name = model if isinstance(model, str) else json.dumps(model, ensure_ascii=False)
    return mapper.get(name, name)


def model_catalog() -> Dict[str, Any]:
    """Return the fixed /v1/models document."""
    return copy.deepcopy(_MODEL_CATALOG)
