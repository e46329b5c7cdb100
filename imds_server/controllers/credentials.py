from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
import logging

from imds_server.services.credential_store import CredentialReader

logger = logging.getLogger(__name__)

IMDS_CREDENTIAL_PATH = "/latest/meta-data/iam/security-credentials/"

router = APIRouter()


def get_credential_reader(request: Request) -> CredentialReader:
    return request.app.state.credential_reader


def get_role_name(request: Request) -> str:
    return request.app.state.settings.role_name


@router.get("/")
async def default_route():
    """Compatibility shim: the root always points at the credential listing."""
    return RedirectResponse(url=IMDS_CREDENTIAL_PATH, status_code=302)


@router.get(IMDS_CREDENTIAL_PATH, response_class=PlainTextResponse)
async def role_name_route(role_name: str = Depends(get_role_name)):
    """
    List the available roles. Exactly one role is ever advertised.
    """
    return PlainTextResponse(role_name)


@router.get(IMDS_CREDENTIAL_PATH + "{requested_role}")
async def credential_route(
    requested_role: str,
    role_name: str = Depends(get_role_name),
    reader: CredentialReader = Depends(get_credential_reader),
):
    """
    Return whatever credential set is currently cached.

    This never triggers or waits on a refresh.

    Args:
        requested_role (str): Role name from the path, must match the advertised role.

    Returns:
        Response: The credential document in the metadata service's JSON shape.
    """
    if requested_role != role_name:
        return PlainTextResponse("Not Found", status_code=404)

    snapshot = reader.read()
    try:
        body = snapshot.to_imds_json()
    except (ValueError, TypeError) as e:
        logger.error(f"Failed to serialize cached credentials: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail="Error serializing credentials"
        )

    return Response(content=body, media_type="application/json")
