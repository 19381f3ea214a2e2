"""
Serve the Foundation Operations Console API with uvicorn.

    python run.py                 # 127.0.0.1:8000
    python run.py --reload        # auto-reload while developing
    python run.py --workers 4     # each worker runs its own side-effect scheduler
"""
import argparse

import uvicorn


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Foundation Operations Console API server")
    parser.add_argument("--host", default="127.0.0.1", help="interface to bind (default: %(default)s)")
    parser.add_argument("--port", type=int, default=8000, help="port to bind (default: %(default)s)")
    parser.add_argument("--reload", action="store_true", help="restart on code changes")
    parser.add_argument(
        "--workers", type=int, default=1,
        help="worker processes (default: %(default)s; forced to 1 with --reload)"
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    workers = 1 if args.reload else max(args.workers, 1)

    print(f"Foundation Operations Console on http://{args.host}:{args.port} "
          f"(workers={workers}, reload={args.reload})")

    uvicorn.run(
        "foundation_ops.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers,
    )


if __name__ == "__main__":
    main()
