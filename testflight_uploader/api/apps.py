"""App lookup by bundle identifier."""

from __future__ import annotations

from testflight_uploader.api.client import AppStoreConnectClient
from testflight_uploader.errors import AppAmbiguousError, AppNotFoundError
from testflight_uploader.utils.logging import get_logger

logger = get_logger("api.apps")


async def lookup_app_id(client: AppStoreConnectClient, bundle_id: str) -> str:
    """
    Resolve the App Store Connect app id for a bundle id.

    The API filter is a prefix-tolerant match on some accounts, so results
    are re-checked for an exact bundle id.

    Args:
        client: API client
        bundle_id: CFBundleIdentifier of the build

    Returns:
        The single matching app id

    Raises:
        AppNotFoundError: If no app matches
        AppAmbiguousError: If more than one app matches
    """
    response = await client.fetch_json(
        "/apps",
        "Failed to locate App Store Connect application.",
        params={"filter[bundleId]": bundle_id},
    )

    ids = [
        app["id"]
        for app in response.get("data") or []
        if app.get("id")
        and (app.get("attributes") or {}).get("bundleId") == bundle_id
    ]

    if not ids:
        raise AppNotFoundError(bundle_id)

    if len(ids) > 1:
        raise AppAmbiguousError(bundle_id, ids)

    logger.debug("app_resolved", bundle_id=bundle_id, app_id=ids[0])
    return ids[0]
