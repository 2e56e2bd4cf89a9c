"""FastAPI dependencies shared by the dropship routers."""

import hmac

from fastapi import Depends, Header, HTTPException, Request

from dropship.container import Adapters


def get_adapters(request: Request) -> Adapters:
    """The process-wide adapter container built at startup."""
    return request.app.state.adapters


def bearer_token(authorization: str) -> str:
    scheme, _, token = (authorization or "").strip().partition(" ")
    return token.strip() if scheme.lower() == "bearer" else ""


def require_cron_secret(
    authorization: str = Header(default=""),
    adapters: Adapters = Depends(get_adapters),
) -> None:
    secret = adapters.settings.cron_secret
    token = bearer_token(authorization)
    if not secret or not token or not hmac.compare_digest(token.encode(), secret.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")
