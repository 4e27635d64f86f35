from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from event_scheduler.core.logging_config import configure_logging
from event_scheduler.database.db import Base, engine
from event_scheduler.models import attendees, events  # noqa: F401  register tables
from event_scheduler.routes import events as event_routes
from event_scheduler.routes import registrations

configure_logging()

app = FastAPI(title="Event Scheduler")

# Configure CORS
origins = [
    "*"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create all tables (in production, use migrations such as Alembic)
Base.metadata.create_all(bind=engine)

# Include the routers
app.include_router(event_routes.router)
app.include_router(registrations.router)
