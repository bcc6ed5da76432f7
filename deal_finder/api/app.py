"""FastAPI application for browsing opportunities and run history."""
from fastapi import FastAPI

from deal_finder.api.routes import opportunities, runs

app = FastAPI(
    title="Deal Finder",
    description="Undervalued and rent-stabilized listing opportunities",
    version="0.1.0"
)

app.include_router(opportunities.router, prefix="/api/opportunities", tags=["opportunities"])
app.include_router(runs.router, prefix="/api", tags=["runs"])


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
