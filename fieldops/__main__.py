"""Run the fieldops API server: ``python -m fieldops`` or the ``fieldops`` script."""

import uvicorn

from fieldops.core.config import settings


def main() -> None:
    uvicorn.run("fieldops.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
