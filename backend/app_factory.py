from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from medcatalog.config import get_services
from medcatalog.core.logging_utils import log_event

load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_event(component="app", event="startup")
    get_services()  # Fail fast on bad configuration
    yield
    log_event(component="app", event="shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Medical Test Catalog API",
        description="Import, validation and export of the medical test catalog",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify the frontend origin
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app
