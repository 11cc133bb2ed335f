"""
Service Factory Module

Common FastAPI service creation utilities: CORS, request logging middleware
and a standardized uvicorn configuration. Health routes live on the service.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from estimate_shared.config.settings import get_settings
from estimate_shared.utils.app_logger import get_logger

logger = get_logger(__name__)


class ServiceInfo:
    """Service configuration container"""

    def __init__(
        self,
        name: str,
        title: str,
        description: str,
        version: str = "1.0.0",
        port: int = 8000,
        host: str = "localhost",
        tags: Optional[List[Dict[str, str]]] = None
    ):
        self.name = name
        self.title = title
        self.description = description
        self.version = version
        self.port = port
        self.host = host
        self.tags = tags or []


def create_fastapi_service(
    service_info: ServiceInfo,
    custom_lifespan: Optional[Callable] = None,
    include_logging_middleware: bool = True,
) -> FastAPI:
    """
    Create a standardized FastAPI application.

    Args:
        service_info: Service configuration
        custom_lifespan: Optional custom lifespan function
        include_logging_middleware: Whether to include request logging middleware
    """
    if custom_lifespan:
        lifespan_func = custom_lifespan
    else:
        @asynccontextmanager
        async def default_lifespan(app: FastAPI):
            logger.info(f"{service_info.name} service starting")
            yield
            logger.info(f"{service_info.name} service stopped")
        lifespan_func = default_lifespan

    openapi_tags = [{"name": "Health", "description": "Health check and service status"}]
    openapi_tags.extend(service_info.tags)

    app = FastAPI(
        title=service_info.title,
        description=service_info.description,
        version=service_info.version,
        lifespan=lifespan_func,
        openapi_tags=openapi_tags
    )

    _configure_cors(app)

    if include_logging_middleware:
        _add_logging_middleware(app)

    logger.info(f"✅ {service_info.name} FastAPI app created")
    return app


def _configure_cors(app: FastAPI) -> None:
    """Configure CORS middleware from ServiceSettings"""
    services = get_settings().services
    if not services.cors_enabled:
        logger.info("🚫 CORS disabled")
        return
    origins = services.cors_origins_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info(f"🌐 CORS enabled with origins: {origins[:3]}")


def _add_logging_middleware(app: FastAPI) -> None:
    """Add request logging middleware"""
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(
            f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.4f}s"
        )
        return response


def create_uvicorn_config(service_info: ServiceInfo, reload: bool = True) -> Dict[str, Any]:
    """Create standardized uvicorn configuration."""
    logger.info(f"🔓 HTTP enabled for {service_info.name} on port {service_info.port}")
    return {
        "host": service_info.host,
        "port": service_info.port,
        "reload": reload,
        "log_config": _get_logging_config(service_info.name),
    }


def _get_logging_config(service_name: str) -> Dict[str, Any]:
    """Get standardized logging configuration for uvicorn"""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": "%(levelprefix)s %(asctime)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "access": {
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": '%(levelprefix)s %(asctime)s - %(client_addr)s - "%(request_line)s" %(status_code)s',
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "default": {
                "formatter": "default",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
            },
            "access": {
                "formatter": "access",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"level": "INFO"},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
            service_name.lower(): {"handlers": ["default"], "level": "INFO", "propagate": False},
        },
    }


def run_service(
    app: FastAPI,
    service_info: ServiceInfo,
    app_module_path: str,
    reload: bool = True
) -> None:
    """
    Run the service with standardized uvicorn configuration.

    Args:
        app: FastAPI application instance
        service_info: Service configuration
        app_module_path: Module path for uvicorn (e.g., "estimate_funnel.main:app")
        reload: Enable auto-reload for development
    """
    config = create_uvicorn_config(service_info, reload)
    uvicorn.run(app_module_path, **config)


ESTIMATE_FUNNEL_SERVICE_INFO = ServiceInfo(
    name="EstimateFunnel",
    title="Estimate Funnel Service",
    description="見積書シートの列役割推定・寸法抽出サービス",
    version="0.1.0",
    port=get_settings().services.funnel_port,
    host=get_settings().services.funnel_host,
    tags=[
        {"name": "Column Detection", "description": "Column role inference for estimate sheets"},
        {"name": "Sizes", "description": "Dimension extraction from free text"},
        {"name": "Line Items", "description": "Quantity summaries per unit"},
    ]
)
