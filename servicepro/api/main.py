from fastapi import APIRouter

from servicepro.api.routes import company, invoices, jobs, quotes, sync

api_router = APIRouter()

# Health check endpoint
@api_router.get("/health-check/", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "servicepro"}

# Include all API routes
api_router.include_router(company.router)
api_router.include_router(quotes.router)
api_router.include_router(quotes.public_router)
api_router.include_router(jobs.router)
api_router.include_router(invoices.router)
api_router.include_router(sync.router)
