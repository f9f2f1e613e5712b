from fastapi import APIRouter
from hiretrack.api import accounts, applications, feed, jobs, stats

api_router = APIRouter()
api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(accounts.router, prefix="/accounts", tags=["accounts"])
api_router.include_router(stats.router, prefix="/stats", tags=["stats"])
api_router.include_router(feed.router, prefix="/feed", tags=["feed"])
