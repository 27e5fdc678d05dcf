from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from bookingdesk.api.v1.calendar import router as calendar_router
from bookingdesk.api.webhooks import router as webhooks_router
from bookingdesk.core.config import settings
from bookingdesk.wiring.dependencies import build_calendar_session


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("booking_id", "status", "range_key", "event_type", "error", "reason"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    session = build_calendar_session()
    app.state.session = session
    await session.start()
    try:
        yield
    finally:
        await session.close()


app = FastAPI(title="Booking Desk Calendar", version="1.0.0", lifespan=lifespan)

app.include_router(calendar_router, prefix="/api/v1/calendar", tags=["calendar"])
app.include_router(webhooks_router, tags=["webhooks"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
