import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
import uvicorn

from api.routers.partners import routes as PartnerRoutes
from api.routers.payouts import routes as PayoutRoutes
from api.routers.system import routes as SystemRoutes
from api.security import require_admin_service
from config import ENV
from services.errors import AdminServiceError, ErrorKind, LedgerInconsistency

ERROR_STATUS = {
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.invalid_state: status.HTTP_409_CONFLICT,
    ErrorKind.insufficient_funds: status.HTTP_400_BAD_REQUEST,
    ErrorKind.validation_failed: status.HTTP_400_BAD_REQUEST,
    ErrorKind.ledger_inconsistency: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.store_failure: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.notifier_failure: status.HTTP_502_BAD_GATEWAY,
}


async def admin_error_handler(request: Request, exc: AdminServiceError) -> JSONResponse:
    content = {"success": False, "error": exc.message}
    if isinstance(exc, LedgerInconsistency):
        content["requires_attention"] = not exc.compensated
    else:
        logging.info(f"{request.method} {request.url.path} failed ({exc.kind.value}): {exc.message}")
    return JSONResponse(status_code=ERROR_STATUS[exc.kind], content=content)


class FastAPIManager:
    def __init__(self):
        self.env = ENV()
        logging.basicConfig(
            level=self.env.LOG_LEVEL.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        self.api = FastAPI(
            version="1.0.0",
            title="Elevatio Admin API",
            description=(
                "Administrative backend of the Elevatio flight-booking platform: "
                "partner management and partner payout approval."
            ),
            debug=self.env.DEBUG,
        )
        self.api.add_exception_handler(AdminServiceError, admin_error_handler)
        self.add_routers()

    def add_routers(self):
        self.api.include_router(
            SystemRoutes.router
        )
        self.api.include_router(
            PayoutRoutes.router,
            prefix="/admin/payouts",
            dependencies=[Depends(require_admin_service)],
            tags=["Payouts"]
        )
        self.api.include_router(
            PartnerRoutes.router,
            prefix="/admin/partners",
            dependencies=[Depends(require_admin_service)],
            tags=["Partners"]
        )

    def start_server(self):
        uvicorn.run(self.api, host="0.0.0.0", port=8000)

    def get_app(self) -> FastAPI:
        return self.api
