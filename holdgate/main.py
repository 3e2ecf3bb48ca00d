from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from holdgate.config import settings
from holdgate.logging_setup import setup_logging
from holdgate.routers import notes, orders, settings as settings_router, webhooks

setup_logging(settings)

app = FastAPI(title='Holdgate')

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
    allow_headers=['Content-Type', 'Authorization'],
)

app.include_router(notes.router)
app.include_router(orders.router)
app.include_router(settings_router.router)
app.include_router(webhooks.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
