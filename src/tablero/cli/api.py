"""``tablero api`` subcommands: run the server or probe a running one."""

import requests

from tablero.logging import get_logger

logger = get_logger(__file__)


def register_subcommands(subparsers):
    for name, help_text in (("start", "Serve the API with uvicorn"), ("status", "Probe GET /status")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--host", default="localhost")
        sub.add_argument("--port", type=int, default=8000)
    subparsers.choices["start"].add_argument("--reload", action="store_true", help="Restart on code changes")


def _start(args):
    import uvicorn

    logger.info("serving API on %s:%s", args.host, args.port)
    if args.reload:
        # Reload needs an import string rather than an app object.
        uvicorn.run("tablero.api.main:app", host=args.host, port=args.port, reload=True)
    else:
        from tablero.api.main import app

        uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _status(args):
    url = f"http://{args.host}:{args.port}/status"
    try:
        response = requests.get(url, timeout=5)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("API not reachable at %s: %s", url, exc)
        print(f"down: {url}")
        return 1
    print(f"up: {url}")
    return 0


_HANDLERS = {"start": _start, "status": _status}


def dispatch(args):
    try:
        handler = _HANDLERS[args.subcommand]
    except KeyError as exc:
        raise ValueError(f"No handler for api subcommand: {args.subcommand}") from exc
    return handler(args)
