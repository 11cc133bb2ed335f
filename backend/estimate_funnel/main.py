"""
🔥 THINK ULTRA! Estimate Funnel Service - 独立マイクロサービス
見積書シートの列役割推定・寸法抽出・明細集計専用サービス

Port: 8003
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env file

from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from estimate_funnel.routers.estimate_router import router as estimate_router
from estimate_shared.config.settings import get_settings
from estimate_shared.exceptions import EstimateDomainError
from estimate_shared.models.responses import ApiResponse
from estimate_shared.services.llm_gateway import create_llm_gateway
from estimate_shared.services.service_factory import (
    ESTIMATE_FUNNEL_SERVICE_INFO,
    create_fastapi_service,
    run_service,
)
from estimate_shared.utils.app_logger import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーション開始/終了イベント"""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info(f"🚀 Estimate Funnel Service 開始 (environment={settings.environment.value})")

    gateway = create_llm_gateway()
    app.state.ai_enabled = gateway.is_enabled()
    logger.info(f"LLM provider={gateway.provider} ai_enabled={app.state.ai_enabled}")

    yield

    logger.info("🔄 Estimate Funnel Service 終了")


# FastAPI アプリ生成 - Service Factory 使用
app = create_fastapi_service(
    service_info=ESTIMATE_FUNNEL_SERVICE_INFO,
    custom_lifespan=lifespan,
    include_logging_middleware=True,
)

app.include_router(estimate_router, prefix="/api/v1")


@app.exception_handler(EstimateDomainError)
async def estimate_domain_error_handler(request: Request, exc: EstimateDomainError) -> JSONResponse:
    logger.warning(f"Domain error on {request.url.path}: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=400,
        content=ApiResponse.error(exc.message, errors=[exc.code], data=exc.details).to_dict(),
    )


@app.get("/", tags=["Health"])
async def root() -> Dict[str, Any]:
    """ルートエンドポイント"""
    return {
        "service": "estimate-funnel",
        "version": ESTIMATE_FUNNEL_SERVICE_INFO.version,
        "status": "running",
        "description": "見積書シートの列役割推定・寸法抽出サービス",
        "endpoints": {
            "health": "/health",
            "detect_columns": "/api/v1/estimate/columns/detect",
            "detect_columns_excel": "/api/v1/estimate/columns/detect/excel",
            "extract_sizes": "/api/v1/estimate/sizes/extract",
            "line_item_summary": "/api/v1/estimate/line-items/summary",
            "excel_sheets": "/api/v1/estimate/sheets/excel",
            "docs": "/docs",
        },
    }


@app.get("/health", tags=["Health"])
async def health_check() -> Dict[str, Any]:
    """サービス状態確認"""
    return ApiResponse.health_check(
        service_name="estimate-funnel",
        version=ESTIMATE_FUNNEL_SERVICE_INFO.version,
        description="見積書列検出サービス",
        llm_provider=get_settings().llm.provider,
    ).to_dict()


if __name__ == "__main__":
    run_service(app, ESTIMATE_FUNNEL_SERVICE_INFO, "estimate_funnel.main:app", reload=get_settings().is_development)
