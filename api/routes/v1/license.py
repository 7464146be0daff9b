"""
api/routes/v1/license.py -- Tenant license endpoint.

Routes:
  GET /api/v1/license  -- the caller tenant's current license window

Auth policy: requires the License/View grant in the caller's session audit
snapshot (require_permission). The license is always read for the tenant in
the token's ClientId claim; there is no way to ask for another tenant's.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import LicenseResponse
from auth.dependencies import require_permission
from auth.license import LicenseCodec, LicenseDecryptionError, read_license_window
from core.lookups import NavigationMenu, UserAction

logger = logging.getLogger("auditgate.api")

router = APIRouter()


@router.get("/license", response_model=LicenseResponse)
def get_license(
    request: Request,
    claims: dict = Depends(require_permission(NavigationMenu.LICENSE, UserAction.VIEW)),
) -> LicenseResponse:
    """Decrypt the tenant's latest license and report its validity window."""
    store = request.app.state.store
    codec: LicenseCodec = request.app.state.license_codec
    client_id = int(claims["ClientId"])

    client = store.get_client(client_id)
    client_license = store.get_latest_client_license(client_id) if client else None
    if client is None or client_license is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "No license has been issued for this client."},
        )

    try:
        window = read_license_window(codec, client_license, client.row_id)
    except LicenseDecryptionError as exc:
        logger.warning("License %s for client %s could not be read", client_license.id, client_id)
        raise HTTPException(
            status_code=409,
            detail={"code": "license_invalid", "message": "The stored license could not be read."},
        ) from exc
    return LicenseResponse.from_window(client_license.name, window)
