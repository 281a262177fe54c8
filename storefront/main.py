import logging

from .app import create_app
from .common.config import settings

app = create_app()

if __name__ == "__main__":
    # python -m storefront.main; production runs `hypercorn storefront.main:app`
    logging.basicConfig(level=settings.LOG_LEVEL)
    app.run(host=settings.APP_HOST, port=settings.APP_PORT)
