from fastapi import APIRouter

from jobagent.api.routes import automation, events, health, jobs, profile, sources

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(automation.router, prefix="/automation", tags=["automation"])
api_router.include_router(profile.router, prefix="/profile", tags=["profile"])
api_router.include_router(sources.router, prefix="/sources", tags=["sources"])
api_router.include_router(events.router, tags=["events"])
