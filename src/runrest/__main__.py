"""Run the RunRest gateway: python -m runrest"""

import uvicorn

from runrest.config import load_config

config = load_config()
uvicorn.run("runrest.app:create_app", host=config.host, port=config.port, factory=True)
