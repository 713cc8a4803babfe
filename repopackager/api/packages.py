from __future__ import annotations

from typing import List
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, StreamingResponse

from repopackager.core.dependencies import get_manager, require_repository
from repopackager.data.repository import Repository
from repopackager.domain.models import PackageDetail, PackageSummary, RepositorySummary
from repopackager.exceptions import PackageNotFoundError, RepositoryNotFoundError
from repopackager.services.manager import PackageManager

logger = logging.getLogger(__name__)
router = APIRouter()

# ---------------------------------------------------------------------------
# 1. Repositories
# ---------------------------------------------------------------------------

@router.get("/repositories", response_model=List[RepositorySummary])
async def list_repositories(manager: PackageManager = Depends(get_manager)) -> List[RepositorySummary]:
    return [repo.to_summary() for repo in manager.get_repositories()]


@router.get("/repositories/{name}", response_model=RepositorySummary)
async def get_repository(repo: Repository = Depends(require_repository)) -> RepositorySummary:
    return repo.to_summary()


@router.post("/repositories/{name}/scan", response_model=RepositorySummary)
async def scan_repository(
    name: str,
    manager: PackageManager = Depends(get_manager),
    repo: Repository = Depends(require_repository),
) -> RepositorySummary:
    """
    Rescan a single repository and return its state once the scan is done.
    """
    await manager.scan_repository(name)
    return repo.to_summary()


@router.post("/scan", status_code=status.HTTP_202_ACCEPTED)
async def scan_all(manager: PackageManager = Depends(get_manager)) -> JSONResponse:
    """
    Start a scan of every repository in the background.
    """
    tasks = manager.scan_repositories()
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"started": [task.get_name().removeprefix("scan:") for task in tasks]},
    )


# ---------------------------------------------------------------------------
# 2. Packages
# ---------------------------------------------------------------------------

@router.get("/repositories/{name}/packages", response_model=List[PackageSummary])
async def list_packages(repo: Repository = Depends(require_repository)) -> List[PackageSummary]:
    packages = sorted(repo.packages.values(), key=lambda p: p.identifier)
    return [pkg.to_summary() for pkg in packages]


@router.get("/repositories/{name}/invalid", response_model=List[PackageSummary])
async def list_invalid_packages(
    name: str,
    manager: PackageManager = Depends(get_manager),
) -> List[PackageSummary]:
    try:
        invalid = manager.get_repository_invalid_packages(name)
    except RepositoryNotFoundError:
        raise HTTPException(status_code=404, detail="Repository not found")
    return [pkg.to_summary() for pkg in invalid]


@router.get("/repositories/{name}/packages/{identifier}", response_model=PackageDetail)
async def get_package(
    name: str,
    identifier: str,
    manager: PackageManager = Depends(get_manager),
) -> PackageDetail:
    pkg = manager.get_repository_package(identifier, name)
    if not pkg:
        raise HTTPException(status_code=404, detail="Package not found")
    return pkg.to_detail()


# ---------------------------------------------------------------------------
# 3. Package contents (zip download)
# ---------------------------------------------------------------------------

@router.get("/repositories/{name}/packages/{identifier}/contents")
async def download_package_contents(
    name: str,
    identifier: str,
    manager: PackageManager = Depends(get_manager),
) -> StreamingResponse:
    """
    Stream the package directory as a zip archive (the `_resources` sub-tree is left out).
    """
    try:
        stream = manager.get_repository_package_contents(identifier, name)
    except RepositoryNotFoundError:
        raise HTTPException(status_code=404, detail="Repository not found")
    except PackageNotFoundError:
        raise HTTPException(status_code=404, detail="Package not found")

    return StreamingResponse(
        stream,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{identifier}.zip"'},
    )
