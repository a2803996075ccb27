import argparse
import os
import sys

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from botdesk.config import load_envs
from botdesk.logger import log


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    log(f"[dispatcher] serving API on {args.host}:{args.port}")
    uvicorn.run("botdesk.api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _seed(args: argparse.Namespace) -> int:
    from botdesk.db import get_database_client
    from botdesk.db.reference_data import seed_reference_data

    db = get_database_client()
    if not args.skip_indexes:
        db.ensure_indexes()
    counts = seed_reference_data(db)
    log("[dispatcher] seeded reference data", **counts)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="botdesk command line")
    commands = parser.add_subparsers(dest="command")

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    serve.add_argument("--port", type=int, default=int(os.getenv("PORT", "4000")))
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve.set_defaults(handler=_serve)

    seed = commands.add_parser("seed", help="Seed reference data and indexes")
    seed.add_argument("--skip-indexes", action="store_true", help="Do not create collection indexes")
    seed.set_defaults(handler=_seed)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 1

    load_envs(PROJECT_ROOT)
    try:
        return int(handler(args) or 0)
    except Exception as exc:
        print(f"[dispatcher error] {type(exc).__name__}: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
