"""
WhaleTools Storefront Generator Backend
统一 FastAPI 入口

AI storefront code generation: visual analysis of reference sites, a
bounded tool-use loop and streamed results.

启动方式:
    python main.py
    或
    uvicorn main:app --reload --port 5100
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from code_gen_config import SERVER_HOST, SERVER_PORT

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="WhaleTools Storefront Generator API",
    description="AI storefront code generation with visual reference analysis",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Register Routers
# ============================================

# Storefront generation (event stream)
from storefront import router as storefront_router
app.include_router(storefront_router)
logger.info("Registered: /api/ai/*")


# ============================================
# Root Endpoints
# ============================================

@app.get("/")
async def root():
    """Root endpoint - API info"""
    return {
        "name": "WhaleTools Storefront Generator API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "storefront_generate": "/api/ai/storefront-generate",
            "health": "/api/ai/health",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "storefront-generator",
        "version": "1.0.0",
    }


# ============================================
# Startup/Shutdown Events
# ============================================

@app.on_event("startup")
async def startup_event():
    """Run on startup"""
    from storefront.dependencies import get_settings

    logger.info("=" * 50)
    logger.info("Storefront Generator API Starting...")
    logger.info("=" * 50)

    settings = get_settings()
    if settings.use_claude_proxy:
        if not settings.claude_proxy_api_key:
            logger.warning("USE_CLAUDE_PROXY is set but CLAUDE_PROXY_API_KEY is missing - generation will not work!")
        else:
            logger.info("Using Claude proxy API")
    elif not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY not set - generation will not work!")

    if not settings.exa_api_key:
        logger.info("EXA_API_KEY not set - web_search tool will report errors")
    if not settings.github_repo:
        logger.info("STOREFRONT_GITHUB_REPO not set - read_current_code uses request snapshots only")

    logger.info(f"Model: {settings.agent.model} (max_tokens={settings.agent.max_tokens})")
    logger.info(f"API documentation available at: http://localhost:{SERVER_PORT}/docs")


@app.on_event("shutdown")
async def shutdown_event():
    """Run on shutdown"""
    logger.info("Storefront Generator API Shutting down...")


# ============================================
# Main Entry Point
# ============================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
        log_level="info",
    )
