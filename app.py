"""Walking Pad Stats backend: `uvicorn app:app` or `python app.py`."""
import os

import uvicorn
from dotenv import load_dotenv

from walkpad.api import create_app_from_settings
from walkpad.config import configure_logging, load_server_settings

load_dotenv()
configure_logging()

app = create_app_from_settings(load_server_settings())


if __name__ == "__main__":
    uvicorn.run(app, host=os.getenv("WALKPAD_HOST", "0.0.0.0"), port=int(os.getenv("WALKPAD_PORT", "8000")))
