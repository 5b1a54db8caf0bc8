"""FastAPI application."""

from fastapi import FastAPI

from .. import __version__
from .endpoints import router

app = FastAPI(
    title="Schema Porter",
    description="Export DM8 schemas as DDL and batched data-load scripts",
    version=__version__,
)

app.include_router(router)
