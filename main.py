import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from voicecmd.api.commands import router as commands_router, get_endpoints
from voicecmd.api.websocket import ws_router
from voicecmd.config import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_endpoints().aclose()


app = FastAPI(title="voicecmd", lifespan=lifespan)

app.include_router(ws_router)
app.include_router(commands_router)


@app.get("/health")
def health():
    return {"status": "ok", "env": settings.ENV}


if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        reload=False,
    )
