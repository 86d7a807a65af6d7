from fastapi import Header, HTTPException, status
from config import ENV
env = ENV()
API_KEY = env.admin_api_token

async def require_admin_service(x_api_key: str | None = Header(None)):
    if not API_KEY:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="API key not configured")
    if not x_api_key or x_api_key != API_KEY:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid service key")
    return True

async def get_admin_id(x_admin_id: str | None = Header(None)) -> str | None:
    # Set by the authentication middleware in front of this service
    return x_admin_id.strip() if x_admin_id and x_admin_id.strip() else None
