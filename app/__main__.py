import argparse

import uvicorn

from app.vars import HOST, PORT


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Forward-rewriting HTTP proxy")
    parser.add_argument("-p", "--port", type=int, default=PORT)
    parser.add_argument("--host", default=HOST)
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    uvicorn.run("app.server:app", host=args.host, port=args.port)


if __name__ == "__main__":
    main()
