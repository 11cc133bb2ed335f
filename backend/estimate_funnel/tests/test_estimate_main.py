from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from estimate_funnel.main import app, estimate_domain_error_handler, health_check, lifespan, root
from estimate_shared.exceptions import SheetParseError


@pytest.mark.asyncio
async def test_root_lists_endpoints():
    out = await root()
    assert out["service"] == "estimate-funnel"
    assert out["status"] == "running"
    assert out["endpoints"]["detect_columns"] == "/api/v1/estimate/columns/detect"


@pytest.mark.asyncio
async def test_health_reports_llm_provider():
    out = await health_check()
    assert out["status"] == "success"
    assert out["data"]["status"] == "healthy"
    assert out["data"]["llm_provider"] == "disabled"


@pytest.mark.asyncio
async def test_lifespan_records_ai_availability():
    async with lifespan(app):
        assert app.state.ai_enabled is False


def test_routes_are_mounted_under_api_prefix():
    paths = {getattr(route, "path", "") for route in app.routes}
    assert "/api/v1/estimate/columns/detect" in paths
    assert "/api/v1/estimate/columns/detect/excel" in paths
    assert "/api/v1/estimate/sizes/extract" in paths
    assert "/api/v1/estimate/line-items/summary" in paths
    assert "/api/v1/estimate/sheets/excel" in paths
    assert "/health" in paths


@pytest.mark.asyncio
async def test_domain_error_handler_uses_error_envelope():
    request = SimpleNamespace(url=SimpleNamespace(path="/api/v1/estimate/sheets/excel"))
    error = SheetParseError.sheet_not_found("集計", ["明細"])
    response = await estimate_domain_error_handler(request, error)
    assert response.status_code == 400
    body = json.loads(response.body)
    assert body["status"] == "error"
    assert body["errors"] == ["SHEET_NOT_FOUND"]
    assert body["data"]["candidates"] == ["明細"]
