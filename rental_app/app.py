import logging

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.catch_error_middleware import ErrorHandlerMiddleware
from core.exception_handler import ValidationErrorHandler
from core.exceptions import http_error_handler
from core.lifespan import lifespan
from core.settings import settings
from realtime.chat_routes import router as chat_socket_router
from routes.admin_booking_routes import router as admin_booking_router
from routes.booking_routes import router as booking_router
from routes.chat_routes import router as chat_router
from routes.webhooks_routes import router as webhook_router

logging.basicConfig(level=logging.INFO)

app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    version="1.0.0",
)

app.include_router(booking_router, prefix="/v1")
app.include_router(admin_booking_router, prefix="/v1")
app.include_router(chat_router, prefix="/v1/chat")
app.include_router(webhook_router, prefix="/v1/webhooks")
app.include_router(chat_socket_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["System"])
async def health_check():
    return {"status": "ok"}


app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(
    RequestValidationError,
    ValidationErrorHandler(),
)

app.add_middleware(ErrorHandlerMiddleware)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8001, reload=True)
