# ============================================================================
# Paper Sandbox v1.0.0
# API Routes Module
# ============================================================================

from app.api.sandbox import router as sandbox_router

__all__ = ["sandbox_router"]
