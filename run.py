from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s %(message)s",
    )
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    # One worker: wizard sessions live in process memory.
    uvicorn.run("photocheck.main:app", host=host, port=port, workers=1, log_config=None)


if __name__ == "__main__":
    main()
