"""Run the service with uvicorn (the ``walkup`` console script)."""

from __future__ import annotations

import os


def main() -> None:
    import uvicorn
    from dotenv import load_dotenv

    from .app import create_app

    load_dotenv()

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))

    print(f"Walk-up music service listening on http://{host}:{port}")
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
