"""FastAPI app entrypoint."""
import os
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from receipt_splitter.database import Base, engine
from receipt_splitter.routers import assignments, auth, groups, receipts, settlements

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logger.remove()
logger.add(sys.stderr, level=LOG_LEVEL)

Base.metadata.create_all(bind=engine)

_origins_env = os.getenv("ALLOWED_ORIGINS", "")
allowed_origins = [o.strip() for o in _origins_env.split(",") if o.strip()] if _origins_env else ["*"]

app = FastAPI(
    title="Receipt Splitter API",
    description="Scan receipts with your group, swipe items to whoever had them, and see who owes whom.",
    version="1.0.0",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api")
app.include_router(groups.router, prefix="/api")
app.include_router(receipts.router, prefix="/api")
app.include_router(assignments.router, prefix="/api")
app.include_router(settlements.router, prefix="/api")


@app.get("/")
def root():
    return {"message": "Receipt Splitter API", "docs": "/docs"}
