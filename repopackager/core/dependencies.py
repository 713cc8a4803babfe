from fastapi import HTTPException, Request

from repopackager.data.repository import Repository
from repopackager.services.manager import PackageManager


def get_manager(request: Request) -> PackageManager:
    # The manager is created by create_app() and stored on the application.
    return request.app.state.manager


def require_repository(name: str, request: Request) -> Repository:
    repo = get_manager(request).get_repository(name)
    if repo is None:
        raise HTTPException(status_code=404, detail="Repository not found")
    return repo
