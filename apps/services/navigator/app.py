"""
Navigator FastAPI Application

Structure:
    - dependencies.py: Singleton instances with lazy initialization
    - lifespan.py: Application startup/shutdown handlers
    - schemas.py: Request / response models
    - routers/: API endpoints

Run:
    uvicorn apps.services.navigator.app:app --host 0.0.0.0 --port 9100
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.services.navigator.lifespan import lifespan
from apps.services.navigator.routers import (
    conversations_router,
    health_router,
    search_router,
)

logger = logging.getLogger("uvicorn.error")

# =============================================================================
# Application Factory
# =============================================================================

app = FastAPI(
    title="Navigator",
    description="Browsing assistant: model directives in, tabs and search results out",
    version="1.0.0",
    lifespan=lifespan,
)

# =============================================================================
# Middleware
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# Routers
# =============================================================================

app.include_router(health_router)
app.include_router(conversations_router)
app.include_router(search_router)
