import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from roombook.config import LOG_LEVEL
from roombook.routers import auth, rooms, availability, reservations
from roombook.db import init_database

logging.basicConfig(level=LOG_LEVEL)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(_: FastAPI):
    "lifespan for initing database"
    init_database()
    yield


app = FastAPI(
    lifespan=lifespan,
    title="Room booker",
    description="Meeting room reservations with approvals, recurring bookings and Big Event lockouts.",
    version="0.2.0",
    license_info={
        "name": "MIT",
        "url": "https://opensource.org/licenses/MIT",
    },
)


app.include_router(auth.router)
app.include_router(rooms.router)
app.include_router(availability.router)
app.include_router(reservations.router)
