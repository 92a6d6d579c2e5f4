# logs: method / path / status; client; IP / UA; duration
# does NOT block the request

import time
from fastapi import Request
import json
import logging

logger = logging.getLogger("evslots.audit")

CLIENT_HEADER = "X-Slots-Client"


async def audit_middleware(request: Request, call_next):
    start_ts = time.time()

    response = await call_next(request)

    duration_ms = int((time.time() - start_ts) * 1000)

    record = {
        "ts": int(start_ts),
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "client": request.headers.get(CLIENT_HEADER, "unknown"),
        "ip": request.headers.get("X-Real-IP") or (request.client.host if request.client else None),
        "ua": request.headers.get("User-Agent", "")[:100],
        "duration_ms": duration_ms,
    }

    logger.info(json.dumps(record, ensure_ascii=False))

    return response
