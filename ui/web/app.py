"""
FastAPI Application - Main web application setup
===============================================

This module creates and configures the FastAPI application
that serves the visitor chat API and the admin rule API.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import Config, load_config
from core.database import Database, init_database
from core.logging import setup_logging, get_logger
from rules.store import RuleStore
from services.chat_session import SessionManager

logger = get_logger("web.app")


def create_app(
    config: Optional[Config] = None,
    database: Optional[Database] = None,
    debug: bool = False
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration
        database: Database instance
        debug: Enable debug mode

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = load_config()

    debug = debug or config.debug or config.ui.web_debug

    setup_logging(
        log_dir=config.log_dir or None,
        log_level="DEBUG" if debug else config.log_level,
        console_output=True
    )

    if database is None:
        database = init_database(config.database_path, timeout=config.database.timeout)

    rule_store = RuleStore(database, default_priority=config.chatbot.default_priority)
    if config.database.seed_file:
        seeded = rule_store.seed_defaults(config.database.seed_file)
        if seeded:
            logger.info(f"Seeded {seeded} chatbot rules from {config.database.seed_file}")

    sessions = SessionManager(
        rule_store,
        max_sessions=config.session.max_sessions,
        idle_timeout=config.session.idle_timeout_seconds,
    )

    app = FastAPI(
        title=config.app_name,
        description="Rule-based website chatbot and rule administration API",
        version=config.version,
        debug=debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ui.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.database = database
    app.state.rule_store = rule_store
    app.state.sessions = sessions

    from .routes import router as main_router
    app.include_router(main_router, prefix="")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc) if debug else "An error occurred"}
        )

    logger.info("Web application created")

    return app


def run_app(
    host: str = "127.0.0.1",
    port: int = 8080,
    debug: bool = False,
    config: Optional[Config] = None
) -> None:
    """
    Run the web application server.

    Args:
        host: Host address to bind
        port: Port to listen on
        debug: Enable debug mode
        config: Application configuration
    """
    if config is None:
        config = load_config()

    app = create_app(config=config, debug=debug)

    logger.info(f"Starting web server on {host}:{port}")

    import uvicorn
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="debug" if debug else "info"
    )
