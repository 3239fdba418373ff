from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import FrogTaskError
from .routers import accounts, catalog, cron, daily_reward, hunger, notifications, progress, wardrobe

logger = logging.getLogger(__name__)

app = FastAPI(title="FrogTask API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FrogTaskError)
async def frogtask_error(request: Request, exc: FrogTaskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


app.include_router(accounts.router)
app.include_router(hunger.router)
app.include_router(wardrobe.router)
app.include_router(progress.router)
app.include_router(daily_reward.router)
app.include_router(notifications.router)
app.include_router(cron.router)
app.include_router(catalog.router)


@app.get("/")
def root() -> dict:
    return {"status": "ok", "message": "FrogTask API online"}
