from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from .agent.llm_provider import ProviderRegistry
from .config import EVENTS_DATA_FILE, LOG_LEVEL
from .routes import router
from .state import AttendeeDirectory, EventStore, InMemoryAttendeeDirectory, InMemoryEventStore

logger = logging.getLogger(__name__)


def create_app(*,
               provider_registry: Optional[ProviderRegistry] = None,
               event_store: Optional[EventStore] = None,
               attendee_directory: Optional[AttendeeDirectory] = None) -> FastAPI:
  """
  Build the API application.

  Collaborators live on ``app.state`` for the life of the process; the
  provider registry builds each provider lazily and only once.
  """
  logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
  app = FastAPI(title="slotwise")
  app.state.provider_registry = provider_registry or ProviderRegistry()
  app.state.event_store = event_store or InMemoryEventStore(data_file=EVENTS_DATA_FILE)
  app.state.attendee_directory = attendee_directory or InMemoryAttendeeDirectory()

  problems = app.state.provider_registry.settings.validate()
  for problem in problems:
    logger.warning("AI configuration: %s", problem)

  app.include_router(router)
  return app


app = create_app()

if __name__ == "__main__":
  import uvicorn

  uvicorn.run("slotwise.app:app", host="0.0.0.0", port=8000)
