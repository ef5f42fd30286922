from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from interceptor.config import Settings, get_settings
from interceptor.observability.logging import configure_logging
from interceptor.observability.middleware import Dispatcher
from interceptor.observability.sinks import FileSink


def create_api() -> FastAPI:
    api = FastAPI(title="Interceptor example", version="0.1.0")

    @api.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @api.get("/{path:path}", response_class=PlainTextResponse)
    async def hello(path: str) -> str:
        return f'Hello, "/{path}"'

    return api


def create_app(settings: Settings | None = None) -> Dispatcher:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = Dispatcher(create_api(), settings=settings)
    app.add_sink(FileSink(settings.access_log_path))
    return app


app = create_app()
