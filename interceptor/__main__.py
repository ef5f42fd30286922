from __future__ import annotations

import argparse

import uvicorn

from interceptor.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Serve the example app behind the request interceptor")
    parser.add_argument("--host", default=settings.host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to listen on")
    args = parser.parse_args()

    uvicorn.run("interceptor.main:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
