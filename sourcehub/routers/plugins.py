"""Plugin management REST API endpoints."""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from sourcehub.dependencies import get_plugin_manager
from sourcehub.plugins.errors import (
    CatalogError,
    FetchError,
    HtmlInsteadOfCodeError,
    IntegrityMismatchError,
    InvalidDescriptorError,
    PluginError,
    PluginNotFoundError,
    ValidationFailedError,
)
from sourcehub.plugins.sdk import SearchOptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plugins", tags=["plugins"])


class CrossSearchRequest(BaseModel):
    """Request body for searching several installed plugins at once."""

    query: str
    plugin_ids: Optional[List[str]] = None
    options: Optional[SearchOptions] = None


def _http_error(e: PluginError) -> HTTPException:
    """Map a plugin pipeline error to an HTTP error."""
    if isinstance(e, PluginNotFoundError):
        status = 404
    elif isinstance(e, (ValidationFailedError, IntegrityMismatchError, HtmlInsteadOfCodeError, InvalidDescriptorError)):
        status = 422
    elif isinstance(e, (FetchError, CatalogError)):
        status = 502
    else:
        status = 500

    detail = {"error": type(e).__name__, "stage": e.stage, "message": str(e)}
    if e.plugin_id:
        detail["plugin_id"] = e.plugin_id
    if isinstance(e, ValidationFailedError):
        detail["reasons"] = list(e.reasons)
    if status >= 500:
        logger.error(f"Plugin request failed: {e}")
    return HTTPException(status_code=status, detail=detail)


# ----------------------------------------------------------------------
# Catalog
# ----------------------------------------------------------------------


@router.get("/catalog")
async def list_catalog():
    """List every plugin available in the catalog."""
    manager = get_plugin_manager()
    try:
        descriptors = await manager.browse()
    except PluginError as e:
        raise _http_error(e)
    return {"plugins": [d.to_dict() for d in descriptors]}


@router.get("/catalog/search")
async def search_catalog(
    q: str = "",
    language: Optional[str] = None,
    tag: Optional[str] = None,
    official: Optional[bool] = None,
    nsfw: Optional[bool] = None,
):
    """Search the catalog by text, language, tag, official and NSFW flags."""
    manager = get_plugin_manager()
    try:
        descriptors = await manager.search_catalog(q, language=language, tag=tag, official=official, nsfw=nsfw)
    except PluginError as e:
        raise _http_error(e)
    return {"plugins": [d.to_dict() for d in descriptors]}


@router.get("/catalog/stats")
async def catalog_statistics():
    """Catalog totals by official, NSFW, language and tag."""
    manager = get_plugin_manager()
    try:
        return await manager.catalog_statistics()
    except PluginError as e:
        raise _http_error(e)


@router.post("/catalog/sync")
async def sync_catalog():
    """Re-fetch the catalog from its mirrors."""
    manager = get_plugin_manager()
    try:
        descriptors = await manager.sync_catalog()
    except PluginError as e:
        raise _http_error(e)
    return {"message": f"Catalog synced ({len(descriptors)} plugins)", "count": len(descriptors)}


# ----------------------------------------------------------------------
# Installed plugins
# ----------------------------------------------------------------------


@router.get("/")
async def list_installed():
    """List installed plugins."""
    manager = get_plugin_manager()
    return {"plugins": [p.to_dict() for p in manager.list_installed()]}


@router.get("/updates")
async def check_updates(refresh: bool = False):
    """List installed plugins with a newer catalog version."""
    manager = get_plugin_manager()
    try:
        updates = await manager.check_for_updates(refresh=refresh)
    except PluginError as e:
        raise _http_error(e)
    return {"updates": [u.to_dict() for u in updates]}


@router.post("/search")
async def search_installed(body: CrossSearchRequest):
    """Search several installed plugins concurrently."""
    manager = get_plugin_manager()
    try:
        results = await manager.search_all(body.query, plugin_ids=body.plugin_ids, options=body.options)
    except PluginError as e:
        raise _http_error(e)
    return {
        "query": body.query,
        "results": {pid: [item.model_dump() for item in items] for pid, items in results.items()},
    }


@router.get("/{plugin_id}")
async def get_plugin(plugin_id: str):
    """Get details of an installed plugin."""
    manager = get_plugin_manager()
    try:
        instance = manager.get(plugin_id)
    except PluginError as e:
        raise _http_error(e)
    return instance.to_dict()


@router.post("/{plugin_id}/install")
async def install_plugin(plugin_id: str):
    """Install a plugin from the catalog."""
    manager = get_plugin_manager()
    try:
        instance = await manager.install(plugin_id)
    except PluginError as e:
        raise _http_error(e)
    return {
        "message": f"Plugin '{instance.id}' v{instance.version} installed",
        "plugin": instance.to_dict(),
    }


@router.post("/{plugin_id}/update")
async def update_plugin(plugin_id: str):
    """Update an installed plugin to the catalog version."""
    manager = get_plugin_manager()
    try:
        instance = await manager.update(plugin_id)
    except PluginError as e:
        raise _http_error(e)
    return {
        "message": f"Plugin '{instance.id}' is at v{instance.version}",
        "plugin": instance.to_dict(),
    }


@router.delete("/{plugin_id}")
async def uninstall_plugin(plugin_id: str):
    """Uninstall a plugin."""
    manager = get_plugin_manager()
    removed = await manager.uninstall(plugin_id)
    if not removed:
        raise HTTPException(status_code=404, detail=f"Plugin '{plugin_id}' is not installed")
    return {"message": f"Plugin '{plugin_id}' uninstalled"}
