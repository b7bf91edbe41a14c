import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from teams_bracket.config import LOG_LEVEL, cors_origins
from teams_bracket.database import init_db
from teams_bracket.routes import bracket

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Teams Bracket API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bracket.router, prefix="/api", tags=["bracket"])


@app.on_event("startup")
def on_startup():
    init_db()


@app.get("/api/health")
def health():
    return {"status": "ok"}
