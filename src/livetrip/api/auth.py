"""Credential extraction and identity resolution for HTTP and WebSocket requests."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, WebSocket, status

from livetrip.storage.interfaces import Identity, IdentityLookup

BEARER_PREFIX = "bearer "
WS_PROTOCOL_PREFIX = "bearer."


def get_identity_lookup(request: Request) -> IdentityLookup:
    return request.app.state.identity_lookup  # type: ignore[no-any-return]


def extract_bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.lower().startswith(BEARER_PREFIX):
        token = header[len(BEARER_PREFIX) :].strip()
        return token or None
    return None


def extract_token_and_protocol(websocket: WebSocket) -> tuple[str | None, str | None]:
    """Extract the token and full protocol from Sec-WebSocket-Protocol header.

    Expected format: bearer.<token>
    Returns: (token, full_protocol) - both needed for proper handshake
    """
    protocol_header = websocket.headers.get("sec-websocket-protocol")
    if protocol_header:
        protocols = [p.strip() for p in protocol_header.split(",")]
        for protocol in protocols:
            if protocol.startswith(WS_PROTOCOL_PREFIX):
                return protocol.split(".", 1)[1] or None, protocol
    return None, None


async def require_identity(
    request: Request,
    lookup: Annotated[IdentityLookup, Depends(get_identity_lookup)],
) -> Identity:
    """Resolve the caller or fail with 401 before any trip decision is made."""
    token = extract_bearer_token(request)
    identity = await lookup.resolve(token) if token else None
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


IdentityDep = Annotated[Identity, Depends(require_identity)]
