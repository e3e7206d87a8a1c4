"""
Endpoints used by the Moteve Client Application (MCA).

Before any other request an MCA registers with ``email\\password\\description``
and receives a device token. It then lists the user's groups and uploads
captured video as a sequence of parts:

1. ``Moteve-Sequence: new`` opens a sequence and returns its id.
2. Each part is POSTed with ``Moteve-Sequence: <id>`` and ``Moteve-Part: <n>``
   (starting at 1), the raw bytes as the body.
3. ``Moteve-Sequence: close_<id>`` closes the sequence.

Every upload request carries ``Moteve-Token``; a new sequence may instead
authenticate with ``Moteve-Auth``.
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from ....core.exceptions import MissingHeader, Unauthorized
from ....core.interfaces.upload import IUploadSessionManager
from ....core.interfaces.users import IGroupService, IUserService
from ....infrastructure.config.models import ApplicationConfig
from ..dependencies import (
    get_config, get_group_service, get_upload_manager, get_user_service
)
from ..protocol import (
    AUTH_ERROR, HEADER_AUTH, HEADER_PART, HEADER_SEQUENCE, HEADER_TOKEN,
    MISSING_TOKEN, WRONG_TOKEN, format_group_names, parse_part_number,
    parse_register_auth, parse_sequence, parse_upload_auth
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mca")


def _reply(body: str, headers: Optional[Dict[str, str]] = None) -> HTMLResponse:
    return HTMLResponse(content=body, headers=headers)


def _require_header(request: Request, name: str) -> str:
    value = request.headers.get(name)
    if not value:
        raise MissingHeader(name)
    return value


async def _read_part(request: Request, limit: int) -> bytes:
    """
    Read the request body, stopping as soon as it grows past ``limit``.

    An oversized body is returned truncated to just over the limit so the
    session manager still rejects it after its sequence checks.
    """
    data = bytearray()
    async for chunk in request.stream():
        data += chunk
        if limit and len(data) > limit:
            del data[limit + 1:]
            break
    return bytes(data)


@router.post("/register.htm")
async def register_mca(
    request: Request,
    users: IUserService = Depends(get_user_service)
) -> HTMLResponse:
    """
    Authenticate an MCA and issue its security token.

    The token is returned both in the ``Moteve-Token`` header and in the
    body; ``AUTH_ERROR`` replaces it when authentication fails.
    """
    credentials = parse_register_auth(_require_header(request, HEADER_AUTH))
    if credentials is None:
        logger.info("MCA authentication failed: malformed Moteve-Auth header")
        return _reply(AUTH_ERROR, {HEADER_TOKEN: AUTH_ERROR})

    logger.info(f"Authenticating MCA. E-mail={credentials.email}, desc={credentials.description}")
    user = await users.authenticate(credentials.email, credentials.password)
    if user is None:
        logger.info(f"MCA authentication failed for user {credentials.email}")
        return _reply(AUTH_ERROR, {HEADER_TOKEN: AUTH_ERROR})

    token = await users.issue_token(user, credentials.description)
    logger.info(f"MCA authentication successful for user {credentials.email}")
    return _reply(token, {HEADER_TOKEN: token})


@router.post("/listGroups.htm")
async def list_groups(
    request: Request,
    users: IUserService = Depends(get_user_service),
    groups: IGroupService = Depends(get_group_service)
) -> HTMLResponse:
    """List the user's group names, each followed by a backslash."""
    token = request.headers.get(HEADER_TOKEN)
    if not token:
        return _reply(MISSING_TOKEN, {HEADER_TOKEN: MISSING_TOKEN})

    user = await users.resolve_user(token)
    if user is None:
        return _reply(WRONG_TOKEN, {HEADER_TOKEN: WRONG_TOKEN})

    names = await groups.list_group_names(user)
    return _reply(format_group_names(names))


@router.post("/upload.htm")
async def upload_video(
    request: Request,
    manager: IUploadSessionManager = Depends(get_upload_manager),
    users: IUserService = Depends(get_user_service),
    config: ApplicationConfig = Depends(get_config)
) -> HTMLResponse:
    """Open a sequence, accept one part, or close a sequence."""
    kind, sequence_id = parse_sequence(_require_header(request, HEADER_SEQUENCE))

    if kind == "new":
        return await _open_sequence(request, manager, users)

    token = _require_header(request, HEADER_TOKEN)

    if kind == "close":
        ack = await manager.close(sequence_id, token)
        return _reply(f"{ack.message}\n")

    part_number = parse_part_number(_require_header(request, HEADER_PART))
    data = await _read_part(request, config.upload.max_part_size)
    ack = await manager.accept_part(sequence_id, part_number, token, data)
    return _reply(f"{ack.message}\n")


async def _open_sequence(request: Request, manager: IUploadSessionManager,
                         users: IUserService) -> HTMLResponse:
    token = request.headers.get(HEADER_TOKEN)
    headers: Dict[str, str] = {}

    if not token:
        credentials = parse_upload_auth(_require_header(request, HEADER_AUTH))
        if credentials is None:
            raise Unauthorized(f"Malformed {HEADER_AUTH} header")

        user = await users.authenticate(credentials.email, credentials.password)
        if user is None:
            raise Unauthorized(f"Authentication failed for {credentials.email}")

        token = await users.issue_token(user, credentials.description)
        headers[HEADER_TOKEN] = token

    sequence_id = await manager.open(token)
    headers[HEADER_SEQUENCE] = sequence_id
    return _reply(sequence_id, headers)
