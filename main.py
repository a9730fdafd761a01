from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, engine, settings
from api import admin, consents, nominations, reviews, rounds, users
from api.deps import shutdown_singletons

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: create tables
    Base.metadata.create_all(bind=engine)
    yield
    # Shutdown: stop the refresh worker, close the API client
    shutdown_singletons()


app = FastAPI(
    title="Loved API",
    description="Backend API for the Loved beatmap curation workflow",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(consents.router)
app.include_router(reviews.router)
app.include_router(nominations.router)
app.include_router(rounds.router)
app.include_router(admin.router)
app.include_router(users.router)


@app.get("/")
def root():
    return {"message": "Loved API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
