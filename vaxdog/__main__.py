import uvicorn

from vaxdog import config
from vaxdog.api import create_app

if __name__ == "__main__":
    uvicorn.run(create_app(), host=config.HOST, port=config.PORT)
