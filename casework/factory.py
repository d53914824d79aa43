"""Builds the FastAPI application and wires the casework services into it."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.endpoints import init_dependencies, router
from .config import AppConfig, get_config, validate_config
from .core.app_manager import AppManager
from .core.case_manager import CaseManager
from .core.identity import UserDirectory
from .core.logging import get_logger, setup_logging
from .core.middleware import (
    ErrorHandlingMiddleware,
    PerformanceMonitoringMiddleware,
    RequestLoggingMiddleware,
    register_exception_handlers,
)
from .storage.database import configure_database, create_tables, database_is_reachable

logger = get_logger(__name__)


@dataclass
class Services:
    """The managers shared by every request of one application instance."""

    config: AppConfig
    user_directory: UserDirectory
    app_manager: AppManager
    case_manager: CaseManager


def build_services(config: AppConfig) -> Services:
    """Bind storage to the configured database and construct the managers."""
    configure_database(config.database_url, echo=config.database_echo)
    create_tables()

    user_directory = UserDirectory()
    app_manager = AppManager(allow_self_loops=config.allow_self_loops)
    case_manager = CaseManager(app_manager, user_directory, strict_transitions=config.strict_transitions)

    if config.seed_demo_data:
        users_added = user_directory.seed()
        apps_added = app_manager.seed_demo_apps()
        cases_added = case_manager.seed_demo_cases() if config.seed_demo_cases else 0
        logger.info(f"Seeded {users_added} demo users, {apps_added} demo apps and {cases_added} demo cases")

    return Services(config, user_directory, app_manager, case_manager)


def _lifespan_for(config: AppConfig):

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.log_structured,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )
        logger.info(f"Starting {config.app_name} {config.app_version} on {config.database_url}")

        try:
            services = build_services(config)
        except Exception:
            logger.exception("Startup aborted")
            raise

        init_dependencies(
            app_manager=services.app_manager,
            case_manager=services.case_manager,
            user_directory=services.user_directory
        )
        yield
        logger.info(f"{config.app_name} stopped")

    return lifespan


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Create the API application for ``config`` (the environment's config by default)."""
    config = config or get_config()
    validate_config(config)

    app = FastAPI(
        title=config.app_name,
        description="Case management driven by per-app workflow graphs",
        version=config.app_version,
        debug=config.debug,
        lifespan=_lifespan_for(config)
    )

    register_exception_handlers(app)

    # Added last means outermost: request ids wrap timing, timing wraps CORS
    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=config.cors_methods,
            allow_headers=["*"],
            allow_credentials=True,
        )
    if config.enable_performance_monitoring:
        app.add_middleware(RequestLoggingMiddleware)
        app.add_middleware(PerformanceMonitoringMiddleware, slow_request_threshold=config.slow_request_threshold)
    app.add_middleware(ErrorHandlingMiddleware)

    app.include_router(router)
    _add_health_routes(app, config)
    return app


def _add_health_routes(app: FastAPI, config: AppConfig) -> None:
    service_name = config.app_name.lower().replace(" ", "-")

    @app.get("/", include_in_schema=False)
    async def root():
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health():
        """Liveness plus a database round trip."""
        database_ok = database_is_reachable()
        return {
            "status": "healthy" if database_ok else "degraded",
            "service": service_name,
            "version": config.app_version,
            "database": "ok" if database_ok else "unreachable",
        }
