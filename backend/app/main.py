from fastapi import FastAPI
from dotenv import load_dotenv
load_dotenv(dotenv_path="backend/.env", override=False)
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from .routers import calendar, emails, google
from sqlalchemy import func
from .db.database import SessionLocal, init_db
from .models.user_model import Account, User
from .security.session import get_current_user
from .core.logging import init_logging
from .core.events import broadcaster
import logging, os, time, uuid
from fastapi import Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from asyncio import create_task, sleep

# Google may grant a subset of the requested scopes; keep the token instead of failing the exchange
os.environ.setdefault('OAUTHLIB_RELAX_TOKEN_SCOPE', '1')

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_logging()
    init_db()
    async def _keepalive():
        while True:
            broadcaster.publish("keepalive", {})
            await sleep(15)
    ka_task = create_task(_keepalive())
    yield
    ka_task.cancel()

app = FastAPI(title="JobTracker CRM Sync API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(calendar.router, prefix="/api/calendar", tags=["calendar"])
app.include_router(emails.router, prefix="/api/emails", tags=["emails"])
app.include_router(google.router, prefix="/api/google", tags=["google"])


@app.get("/health")
def health():
    db = SessionLocal()
    try:
        connected = db.query(func.count(Account.id)).filter(Account.connected.is_(True)).scalar() or 0
    finally:
        db.close()
    return {"status": "ok", "connected_accounts": connected, "subscribers": broadcaster.subscribers}

@app.middleware("http")
async def timing_logger(request: Request, call_next):
    trace_id = request.headers.get("X-Trace-Id", str(uuid.uuid4())[:8])
    start = time.perf_counter()
    try:
        response = await call_next(request)
        duration = (time.perf_counter()-start)*1000
        logging.getLogger().info(
            f"{request.method} {request.url.path} {response.status_code} {duration:.1f}ms",
            extra={"trace_id": trace_id, "method": request.method, "path": request.url.path, "status": response.status_code, "duration_ms": round(duration,1)}
        )
        response.headers['X-Trace-Id'] = trace_id
        return response
    except Exception as exc:  # pragma: no cover
        duration = (time.perf_counter()-start)*1000
        logging.getLogger().error(
            f"ERR {request.method} {request.url.path} {type(exc).__name__}",
            exc_info=exc,
            extra={"trace_id": trace_id, "method": request.method, "path": request.url.path, "status": 500, "duration_ms": round(duration,1)}
        )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error", "trace_id": trace_id})

@app.get('/api/events')
async def sse_events(request: Request, user: User = Depends(get_current_user)):  # pragma: no cover (difficult in unit tests)
    user_id = user.id
    async def event_stream():
        async for msg in broadcaster.subscribe(user_id):
            if await request.is_disconnected():
                break
            yield msg
    return StreamingResponse(event_stream(), media_type='text/event-stream')
