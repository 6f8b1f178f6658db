from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from diligence.api.routes import diligence
from diligence.config import settings
from diligence.services import logger as log_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_service.log_event(event_type="startup", message="Diligence API starting")
    yield
    log_service.log_event(event_type="shutdown", message="Diligence API stopping")


app = FastAPI(
    title="Diligence Engine",
    description="Parallel multi-source due-diligence research with discrepancy analysis",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(diligence.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "diligence"}
