"""
Brahmand CRM - API Backend

Start with:
    uvicorn crm_backend.server:app --host 0.0.0.0 --port 8001 --reload
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm_backend.config import CORS_ORIGINS, SCHEDULER_ENABLED, is_production, now_iso
from crm_backend.services.customer_lifecycle import InvalidStatusError
from crm_backend.services.query_filters import InvalidSearchError

# Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("crm")

app = FastAPI(
    title="Brahmand CRM",
    description="Customer, interaction and task management with rule-based automation",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERROR ENVELOPE ====================

def _field_of(loc) -> str:
    parts = [str(p) for p in loc if p not in ("body", "query", "path")]
    return ".".join(parts) or "request"


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, list):
        body = {"success": False, "errors": exc.detail}
    else:
        body = {"success": False, "message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{"field": _field_of(e.get("loc", ())), "message": e.get("msg", "Invalid value")}
              for e in exc.errors()]
    return JSONResponse(status_code=400, content={"success": False, "errors": errors})


@app.exception_handler(InvalidStatusError)
async def invalid_status_handler(request: Request, exc: InvalidStatusError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "errors": [{"field": "status", "message": str(exc)}]}
    )


@app.exception_handler(InvalidSearchError)
async def invalid_search_handler(request: Request, exc: InvalidSearchError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "errors": [{"field": "search", "message": str(exc)}]}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    body = {"success": False, "message": "Server error"}
    if not is_production():
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


# ==================== ROUTES ====================

from crm_backend.routes import auth, users, customers, interactions, tasks, dashboard, ai, automation  # noqa: E402

app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(customers.router, prefix="/api")
app.include_router(interactions.router, prefix="/api")
app.include_router(tasks.router, prefix="/api")
app.include_router(dashboard.router, prefix="/api")
app.include_router(ai.router, prefix="/api")
app.include_router(automation.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "Brahmand CRM API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


@app.get("/api/health")
async def health():
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "success": True,
        "data": {
            "status": "ok",
            "time": now_iso(),
            "scheduler": bool(scheduler and scheduler.running),
        }
    }


# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup():
    from crm_backend.config import db
    from crm_backend.scheduler_service import TaskScheduler

    await db.users.create_index("email", unique=True)
    await db.users.create_index("id", unique=True)
    await db.customers.create_index("id", unique=True)
    await db.customers.create_index("assignedTo")
    await db.customers.create_index("status")
    await db.customers.create_index("createdAt")
    await db.interactions.create_index("id", unique=True)
    await db.interactions.create_index([("customer", 1), ("date", -1)])
    await db.tasks.create_index("id", unique=True)
    await db.tasks.create_index([("assignedTo", 1), ("status", 1)])
    await db.tasks.create_index("dueDate")
    await db.activity_logs.create_index("createdAt")
    await db.activity_logs.create_index([("entityType", 1), ("entityId", 1)])
    logger.info("MongoDB indexes ready")

    if SCHEDULER_ENABLED:
        app.state.scheduler = TaskScheduler(db)
        app.state.scheduler.start()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    logger.info("Brahmand CRM started")


@app.on_event("shutdown")
async def shutdown():
    from crm_backend.config import client

    scheduler = getattr(app.state, "scheduler", None)
    if scheduler:
        scheduler.stop()
    client.close()
    logger.info("Brahmand CRM stopped")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
