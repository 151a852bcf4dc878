# main.py
import os
if os.getenv("DEBUGPY", "0") == "1":
    import debugpy
    debugpy.listen(("0.0.0.0", 5678))

from config.logging_config import configure_logging

configure_logging()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from middleware.rate_limit import limiter
from middleware.request_logging import RequestLoggingMiddleware
from routers.portfolio_routes import router as portfolio_router
from routers.settings_routes import router as settings_router
from routers.symbols_routes import router as symbols_router
from routers.trades_routes import router as trades_router
from services.currency_service import FxRateCache, make_rate_fetcher
from services.yahoo_service import YahooPriceService


app = FastAPI(title="CapTrack API")

origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
# applies RATE_LIMIT_DEFAULT to every route without its own @limiter.limit
app.add_middleware(SlowAPIMiddleware)

# shared per-process price client and FX rate cache
app.state.prices = YahooPriceService()
app.state.fx = FxRateCache(make_rate_fetcher(app.state.prices))

app.include_router(trades_router, prefix="/api/trades")
app.include_router(portfolio_router, prefix="/api/portfolio")
app.include_router(settings_router, prefix="/api/settings")
app.include_router(symbols_router, prefix="/api/symbols")


@app.get("/health")
def health():
    return {"status": "ok"}


# db startup (alembic owns the schema in production; this covers local sqlite)
from database import Base, engine
import models  # noqa: F401  registers every table on Base.metadata

Base.metadata.create_all(bind=engine)
