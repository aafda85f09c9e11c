import uvicorn

from velo.config import HOST, PORT, LOG_LEVEL


def run() -> None:
    uvicorn.run("velo.main:app", host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
