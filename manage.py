#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Mailing-list subscriber registry (SQLite)

Commands:
  init        Create the emails and operation_log tables (safe to re-run)
  add         Subscribe an address (unconfirmed)
  get         Show one subscriber
  confirm     Mark an address as confirmed now
  opt-out     Soft-delete an address (opt_out=1, the row is kept)
  list        Show one page of active subscribers (ascending id)
  export      Write all active subscribers to CSV

Notes:
- confirmed_at of 1970-01-01T00:00:00+00:00 means "not confirmed yet".
- DB path comes from MAILINGLIST_DB_PATH or the YAML file given by --config.
"""

import argparse
import datetime as dt
import logging
import os
import sys

from mailinglist.errors import ConstraintError, MailingListError, SchemaError
from mailinglist.logs import LogContext, ensure_log_schema
from mailinglist.repository.email_repo import to_dict
from mailinglist.services import email_svc


def _print_entry(entry):
    if entry is None:
        print("(not found)")
        return
    d = to_dict(entry)
    print(f"{d['id']:>6}  {d['email']:<40} confirmed_at={d['confirmed_at']}  opt_out={d['opt_out']}")


def init_schemas() -> int:
    try:
        ensure_log_schema()
        email_svc.ensure_email_schema()
    except SchemaError as e:
        print(f"schema init failed: {e}", file=sys.stderr)
        return 2
    return 0


def cmd_init(args):
    # main() already ran init_schemas()
    print("ok")
    return 0


def cmd_add(args):
    try:
        with LogContext("EMAIL_CREATE", source="cli") as log:
            log.set_email(args.email)
            entry = email_svc.subscribe(args.email, log)
    except ConstraintError:
        print(f"{args.email} is already subscribed")
        return 1
    _print_entry(entry)
    return 0


def cmd_get(args):
    entry = email_svc.find(args.email)
    _print_entry(entry)
    return 0 if entry else 1


def cmd_confirm(args):
    with LogContext("EMAIL_CONFIRM", source="cli") as log:
        log.set_email(args.email)
        entry = email_svc.confirm(args.email, log=log)
    _print_entry(entry)
    return 0


def cmd_opt_out(args):
    with LogContext("EMAIL_OPT_OUT", source="cli") as log:
        log.set_email(args.email)
        entry = email_svc.unsubscribe(args.email, log)
    _print_entry(entry)
    return 0


def cmd_list(args):
    items = email_svc.list_active(args.page, args.count)
    if not items:
        print("(empty)")
    for e in items:
        _print_entry(e)
    return 0


def cmd_export(args):
    out = args.out or os.path.join("exports", f"subscribers_{dt.datetime.now().strftime('%Y%m%d')}.csv")
    n = email_svc.export_active_csv(out)
    print(f"exported {n} subscribers to {out}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mailing-list subscriber registry (SQLite)")
    parser.add_argument("--config", default=None, help="YAML config (default: config.yaml in project root)")
    sub = parser.add_subparsers()

    p_init = sub.add_parser("init", help="create tables")
    p_init.set_defaults(func=cmd_init)

    p_add = sub.add_parser("add", help="subscribe an address")
    p_add.add_argument("--email", required=True)
    p_add.set_defaults(func=cmd_add)

    p_get = sub.add_parser("get", help="show one subscriber")
    p_get.add_argument("--email", required=True)
    p_get.set_defaults(func=cmd_get)

    p_conf = sub.add_parser("confirm", help="mark an address confirmed now")
    p_conf.add_argument("--email", required=True)
    p_conf.set_defaults(func=cmd_confirm)

    p_opt = sub.add_parser("opt-out", help="soft-delete an address")
    p_opt.add_argument("--email", required=True)
    p_opt.set_defaults(func=cmd_opt_out)

    p_list = sub.add_parser("list", help="one page of active subscribers")
    p_list.add_argument("--page", type=int, default=1)
    p_list.add_argument("--count", type=int, default=None, help="page size (default from config)")
    p_list.set_defaults(func=cmd_list)

    p_exp = sub.add_parser("export", help="export active subscribers to CSV")
    p_exp.add_argument("--out", required=False)
    p_exp.set_defaults(func=cmd_export)
    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.config:
        os.environ["MAILINGLIST_CONFIG"] = args.config
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    rc = init_schemas()
    if rc:
        return rc
    try:
        return args.func(args)
    except MailingListError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
