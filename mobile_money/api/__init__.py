"""
Mobile Money API Application Factory
"""

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .transactions import router as transactions_router
from ..config import get_config
from ..logging_config import setup_logging


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    app = FastAPI(
        title="Mobile Money Ledger API",
        description="Transfers, agent cash-in/cash-out and settlement",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in config.cors_origins.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(transactions_router, tags=["Transactions"])

    @app.get("/")
    async def root():
        """API overview"""
        return {
            "system": "Mobile Money Ledger",
            "version": "1.0.0",
            "endpoints": {
                "send_money": "POST /send-money",
                "cash_in": "POST /cash-in",
                "cash_out": "POST /cash-out",
                "approve_transaction": "PATCH /approve-transaction/{transaction_id}",
                "transactions": "GET /transactions",
                "pending_transactions": "GET /pending-transactions",
                "balance": "GET /balance"
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "mobile_money_api",
            "version": "1.0.0"
        }

    return app


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "mobile_money.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
