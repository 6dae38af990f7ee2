"""
FastAPI Webhook Receiver para o bot de revisões
"""

import time
from collections import deque
from typing import Deque

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.config import settings
from core.redis_client import redis_healthy
from core.telemetry import logger
from services.reviews import parse_callback_data
from workers.review_tasks import handle_rating_callback

app = FastAPI(title="Vocabulary Review Engine")

# Timestamp de quando a aplicação foi iniciada
APP_START_TIME = int(time.time())

# Cache de update_ids já processados (mantém últimos 1000)
PROCESSED_UPDATES: Deque[int] = deque(maxlen=1000)


@app.middleware("http")
async def validate_telegram_signature(request: Request, call_next):
    """Valida o secret do Telegram em webhooks"""
    if request.url.path.startswith("/webhook") and settings.TELEGRAM_WEBHOOK_SECRET:
        secret = request.headers.get("X-Telegram-Bot-Api-Secret-Token")
        if secret != settings.TELEGRAM_WEBHOOK_SECRET:
            logger.warning(
                "Invalid webhook secret",
                extra={
                    "path": request.url.path,
                    "ip": request.client.host if request.client else None,
                },
            )
            return JSONResponse({"ok": False}, status_code=403)
    return await call_next(request)


@app.post("/webhook")
async def webhook(request: Request):
    """Recebe updates do bot e enfileira os callbacks de avaliação"""
    try:
        update = await request.json()
        update_id = update.get("update_id")

        # Verificar duplicação
        if update_id and update_id in PROCESSED_UPDATES:
            return JSONResponse({"ok": True}, status_code=200)

        # Cache update_id
        if update_id:
            PROCESSED_UPDATES.append(update_id)

        callback_query = update.get("callback_query") or {}
        if callback_query and parse_callback_data(callback_query.get("data")):
            # Enfileirar SEM AGUARDAR
            handle_rating_callback.delay(callback_query)
            logger.debug("Rating callback queued", extra={"update_id": update_id})

        return JSONResponse({"ok": True}, status_code=200)

    except Exception as e:
        # Em caso de erro, ainda retornar OK para evitar retransmissão
        logger.error(
            "Error processing webhook",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return JSONResponse({"ok": False}, status_code=200)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    redis_ok = redis_healthy()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "redis": redis_ok,
        "started_at": APP_START_TIME,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)  # nosec B104
