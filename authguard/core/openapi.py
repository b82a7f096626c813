"""OpenAPI customization utilities.

Adds to the generated schema:
- Tags metadata
- The admin API Key security scheme (``X-API-Key``), applied only to the
  throttle operations
- The 429 ``Retry-After`` header on throttled operations
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

TAGS_METADATA = [
    {"name": "Auth", "description": "Login and registration, throttled with brute-force lockout."},
    {"name": "Throttle", "description": "Operational view of the throttling stores."},
    {"name": "Health", "description": "Liveness checks; never throttled."},
]


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add tags and security metadata."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "AdminApiKey",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key (APP_ADMIN_API_KEYS).",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in TAGS_METADATA:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path.startswith("/v1/throttle"):
                    method_obj["security"] = [{"AdminApiKey": []}]
                too_many = method_obj.get("responses", {}).get("429")
                if too_many is not None:
                    too_many.setdefault("description", "Throttled")
                    too_many.setdefault("headers", {})["Retry-After"] = {
                        "description": "Seconds to wait before retrying.",
                        "schema": {"type": "integer"},
                    }

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
