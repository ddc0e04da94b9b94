from fastapi import APIRouter
from studious.api.routes import (
    announcements,
    assignments,
    classes,
    files,
    folders,
    notifications,
    submissions,
    uploads,
)

api_router = APIRouter()

api_router.include_router(classes.router, prefix="/classes", tags=["classes"])
api_router.include_router(assignments.router, prefix="/classes/{class_id}/assignments", tags=["assignments"])
api_router.include_router(
    submissions.router,
    prefix="/classes/{class_id}/assignments/{assignment_id}/submissions",
    tags=["submissions"],
)
api_router.include_router(announcements.router, prefix="/classes/{class_id}/announcements", tags=["announcements"])
api_router.include_router(folders.router, prefix="/classes/{class_id}/folders", tags=["folders"])
api_router.include_router(files.router, prefix="/files", tags=["files"])
api_router.include_router(uploads.router, prefix="/upload", tags=["uploads"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
