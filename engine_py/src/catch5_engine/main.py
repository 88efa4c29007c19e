"""FastAPI application for the Catch 5 game server"""

import logging

from .settings import get_settings
from .ws.server import create_app

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = create_app(settings)


@app.get("/")
async def root():
    return {"message": "Catch 5 Game Server", "version": "1.0.0"}
