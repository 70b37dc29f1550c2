import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import Cookie, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from pydantic import BaseModel

_project_root = Path(__file__).resolve().parents[1]
if str(_project_root) not in sys.path:
    sys.path.append(str(_project_root))

from backend import app_context
from backend.app.db import StorageFailure, connect
from backend.app.routes.billing import router as billing_webhook_router
from backend.app.routes.subscriptions import router as subscriptions_router
from backend.app.routes.usage import router as usage_router
from backend.app.services.entitlements import get_config


load_dotenv()

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if origin.strip()]


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None


def get_conn():
    return connect(get_config())


def resolve_user_from_session_token(session_token: str) -> Optional[CurrentUser]:
    try:
        payload = jwt.decode(session_token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub") or payload.get("userId")
    if subject is None:
        return None
    return CurrentUser(id=str(subject), email=payload.get("email"))


def get_current_user(session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME)) -> CurrentUser:
    if not session_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = resolve_user_from_session_token(session_token)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


app_context.configure(get_conn=get_conn, get_current_user=get_current_user)

app = FastAPI(title="MindQuest Entitlements API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(usage_router)
app.include_router(subscriptions_router)
app.include_router(billing_webhook_router)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "storage": get_config().storage_backend}


@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Storage temporarily unavailable"},
    )
