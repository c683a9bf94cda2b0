from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from promptpool.config import settings
from promptpool.db.database import close_db, init_db
from promptpool.db.pool_store import PoolStore
from promptpool.db.users import UserSources
from promptpool.middleware.auth import AuthMiddleware
from promptpool.services.ai_client import AIClient
from promptpool.services.prompt_generator import PromptGenerator
from promptpool.services.prompt_scheduler import PromptScheduler, SelectionPolicy
from promptpool.services.utterance_scorer import UtteranceScorer

# CORS: comma-separated CORS_ORIGINS, local dev defaults outside prod
if settings.cors_origins:
    _allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
elif settings.env == "prod":
    _allowed_origins = []
else:
    _allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]


def wire_services(app: FastAPI) -> None:
    """Build the service graph once and hang it on app.state."""
    ai = AIClient(settings)
    store = PoolStore()
    users = UserSources()
    generator = PromptGenerator(ai, store, users)

    app.state.store = store
    app.state.users = users
    app.state.generator = generator
    app.state.scheduler = PromptScheduler(
        store, generator, users, policy=SelectionPolicy.from_settings(settings)
    )
    app.state.scorer = UtteranceScorer(ai, store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    wire_services(app)
    yield
    # Let in-flight usage writes land before the pool closes
    await app.state.scheduler.drain()
    await close_db()


app = FastAPI(title="Prompt Pool", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Admin-Secret"],
)
app.add_middleware(AuthMiddleware)

from promptpool.routes.prompts import router as prompts_router
from promptpool.routes.admin import router as admin_router

app.include_router(prompts_router)
app.include_router(admin_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}
