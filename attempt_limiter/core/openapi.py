"""OpenAPI customization.

Adds the ``X-API-Key`` security scheme, requires it only on the
administrative reset operation, and registers tag descriptions.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {
        "name": "Rate limits",
        "description": "Check, record and reset attempt limits for gated actions.",
    },
    {
        "name": "Health",
        "description": "Liveness checks.",
    },
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and API key security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "ApiKeyAuth",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key, required to clear rate limits.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            if not path.startswith("/v1/rate-limits/"):
                continue
            delete_op = methods.get("delete")
            if isinstance(delete_op, dict):
                delete_op["security"] = [{"ApiKeyAuth": []}]

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
