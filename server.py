from __future__ import annotations

from filevue_backend.app import create_app
from filevue_backend.config import Settings

settings = Settings.from_env()
app = create_app(settings)


def main() -> None:
    import uvicorn

    ssl_options = {}
    if settings.https_enabled:
        ssl_options = {
            "ssl_certfile": str(settings.ssl_cert_path),
            "ssl_keyfile": str(settings.ssl_key_path),
        }
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None, **ssl_options)


if __name__ == "__main__":
    # Convenience: python server.py
    main()
