from __future__ import annotations

from authguard.core.app_factory import create_app


def test_openapi_documents_throttling_contract():
    schema = create_app(sweep_interval_seconds=0).openapi()

    assert "AdminApiKey" in schema["components"]["securitySchemes"]
    assert {"Auth", "Throttle", "Health"} <= {tag["name"] for tag in schema["tags"]}

    stats = schema["paths"]["/v1/throttle/stats"]["get"]
    assert stats["security"] == [{"AdminApiKey": []}]
    assert "Retry-After" in stats["responses"]["429"]["headers"]

    login = schema["paths"]["/v1/auth/login"]["post"]
    assert "Retry-After" in login["responses"]["429"]["headers"]
    assert "security" not in login


def test_openapi_schema_is_cached():
    app = create_app(sweep_interval_seconds=0)

    assert app.openapi() is app.openapi()
