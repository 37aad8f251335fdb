"""Run the chat relay under uvicorn."""

from __future__ import annotations

import argparse
import os

import uvicorn


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Gemini chat relay server")
    parser.add_argument("--host", default=os.getenv("CHATRELAY_HOST", "0.0.0.0"))
    parser.add_argument(
        "--port", type=int, default=int(os.getenv("CHATRELAY_PORT", "8000"))
    )
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    uvicorn.run(
        "chatrelay.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":  # pragma: no cover - manual invocation
    main()
