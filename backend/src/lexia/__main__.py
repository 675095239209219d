"""Run the API server: python -m lexia"""

import uvicorn

from lexia.config import settings


if __name__ == "__main__":
    uvicorn.run("lexia.api:app", host=settings.host, port=settings.port)
