"""Recipe subscription billing API.

Design goals:
- Email/password accounts with server-tracked JWT sessions
- Free/Basic/Pro plans gating how many recipes a user can browse
- Paid plans go through a paylink checkout redirect, reconciled by polling
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from recipe_billing.core.config import settings
from recipe_billing.core.log_config import configure_logging
from recipe_billing.db import Base, SessionLocal, engine
from recipe_billing.middleware import FixedWindowRateLimiter, RateLimitMiddleware, SecurityHeadersMiddleware
from recipe_billing.routes import auth, checkout, health, recipes, subscription, user
from recipe_billing.services.plans import seed_plans
from recipe_billing.worker import PollingWorker


configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, version='1.0.0')

app.state.rate_limiter = FixedWindowRateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)
app.state.worker = None

app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter, trust_proxy=settings.trust_proxy)
app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(user.router)
app.include_router(subscription.router)
app.include_router(recipes.router)
if not settings.is_production:
    app.include_router(checkout.router)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    detail = f'Internal server error: {exc}' if settings.debug else 'Internal server error'
    return JSONResponse(status_code=500, content={'detail': detail})


@app.on_event("startup")
def init_db() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as db:
            seed_plans(db)
    except OperationalError as exc:
        logger.error('DB init failed: %s', exc)
        return

    if settings.run_background_jobs:
        app.state.worker = PollingWorker()
        app.state.worker.start()


@app.on_event("shutdown")
def stop_worker() -> None:
    worker = app.state.worker
    if worker is not None:
        worker.stop()
        app.state.worker = None
    engine.dispose()
    logger.info('Shutdown complete')
