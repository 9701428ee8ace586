"""
Bellman Solver: Entry point.

Serve the rule engine and value-function solver over HTTP.
"""

import argparse
import logging

from solver.settings import get_settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bellman Solver API server")
    parser.add_argument("--host", default=None, help="Host to bind")
    parser.add_argument("--port", type=int, default=None, help="Port to bind")
    parser.add_argument("--log-level", default=None,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        type=str.upper, help="Logging level")
    parser.add_argument("--reload", action="store_true", help="Auto-reload on changes")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    import uvicorn

    args = parse_args(argv)
    settings = get_settings({
        "host": args.host,
        "port": args.port,
        "log_level": args.log_level,
    })

    logging.basicConfig(
        level=settings["log_level"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(
        "backend.app.main:app",
        host=settings["host"],
        port=settings["port"],
        reload=args.reload,
        log_level=settings["log_level"].lower(),
    )


if __name__ == "__main__":
    main()
