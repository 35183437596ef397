#!/usr/bin/env python3
"""Run the application server"""
import argparse
import asyncio
import sys

from appserver.main import create_application


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the application server")
    parser.add_argument("-c", "--config", help="JSON configuration file", default=None)
    args = parser.parse_args()

    app = create_application(args.config)
    return asyncio.run(app.run())


if __name__ == "__main__":
    sys.exit(main())
