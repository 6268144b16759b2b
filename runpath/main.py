from __future__ import annotations

import uvicorn
from prometheus_fastapi_instrumentator import Instrumentator

from . import app
from .core.config import settings
from .core.logging import configure_logging
from .crud.users import seed_roles
from .db.session import SessionLocal

configure_logging()
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


@app.on_event("startup")
async def _seed_roles() -> None:
    db = SessionLocal()
    try:
        seed_roles(db)
    finally:
        db.close()


def run() -> None:
    uvicorn.run("runpath.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
