import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from workorders import config
from workorders.db import init_db
from workorders.errors import WorkOrderError
from workorders.middleware.auth import AuthMiddleware

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("workorders")


# ==== FastAPI app ====
app = FastAPI(title=config.APP_NAME)

# Проверка токена и доступа по роли
app.add_middleware(AuthMiddleware)


# ==== Ошибки → {"error": true, "msg": ...} ====
@app.exception_handler(WorkOrderError)
async def work_order_error_handler(request: Request, exc: WorkOrderError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": True, "msg": exc.message}, status_code=exc.status_code)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Unhandled database error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": True, "msg": "Database error"}, status_code=500)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = f"{field}: {first.get('msg')}" if field else "Invalid request body"
    return JSONResponse({"error": True, "msg": msg}, status_code=422)


# ==== Routers ====
from workorders.routers import audit_logs, auth, operators, reports, work_orders  # noqa: E402

app.include_router(auth.router)
app.include_router(operators.router)
app.include_router(work_orders.router)
app.include_router(reports.router)
app.include_router(audit_logs.router)


@app.get("/health")
def health():
    return {"status": "ok", "env": config.ENV}


@app.on_event("startup")
def startup_event():
    # Создаём таблицы, если их ещё нет
    init_db()
    logger.info("🚀 %s started (env=%s)", config.APP_NAME, config.ENV)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("workorders.main:app", host="0.0.0.0", port=8000)
