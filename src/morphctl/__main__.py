#!/usr/bin/env python3
"""
Command-line front end.

    python -m morphctl start SNAPSHOT_ID [--wait]
    python -m morphctl status INSTANCE_ID
    python -m morphctl wait INSTANCE_ID [--timeout 300]
    python -m morphctl rotate-key INSTANCE_ID [--async]
    python -m morphctl exec INSTANCE_ID COMMAND...
    python -m morphctl stop INSTANCE_ID
"""

import argparse
import json
import logging
import sys

from .client import MorphClient
from .config import load_config
from .errors import MorphError
from .instance import Instance

logger = logging.getLogger("morphctl")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="morphctl")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="start an instance from a snapshot")
    start.add_argument("snapshot_id")
    start.add_argument("--wait", action="store_true", help="wait until ready")

    for name, help_text in (("status", "show instance state"), ("stop", "stop an instance")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("instance_id")

    wait = sub.add_parser("wait", help="wait until an instance is ready")
    wait.add_argument("instance_id")
    wait.add_argument("--timeout", type=float)

    rotate = sub.add_parser("rotate-key", help="rotate the SSH key pair and password")
    rotate.add_argument("instance_id")
    rotate.add_argument("--async", dest="use_async", action="store_true")
    rotate.add_argument("--timeout", type=float)

    run = sub.add_parser("exec", help="run a command over SSH")
    run.add_argument("instance_id")
    run.add_argument("cmd", nargs=argparse.REMAINDER)

    return parser


def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    client = MorphClient.from_config(config)

    if args.command == "start":
        instance = client.instances.start(args.snapshot_id)
        if args.wait:
            instance.wait_until_ready(config.polling.ready_timeout)
        print(json.dumps(instance.to_dict(), indent=2))
        return 0

    instance = Instance(args.instance_id, client)

    if args.command == "status":
        print(json.dumps(instance.refresh().to_dict(), indent=2))
    elif args.command == "wait":
        timeout = args.timeout if args.timeout is not None else config.polling.ready_timeout
        instance.wait_until_ready(timeout)
        print(f"{instance.id} ready")
    elif args.command == "stop":
        instance.stop()
        print(f"{instance.id} stopping")
    elif args.command == "rotate-key":
        if args.use_async:
            credential = instance.rotate_ssh_key_async(timeout=args.timeout)
        else:
            credential = instance.rotate_ssh_key()
        print(credential.public_key)
    elif args.command == "exec":
        with instance.ssh() as session:
            result = session.exec(" ".join(args.cmd))
        sys.stdout.write(result.stdout)
        sys.stderr.write(result.stderr)
        return result.exit_code
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )
    try:
        return run(args)
    except MorphError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
