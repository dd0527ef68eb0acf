"""VaxLedger CLI — command-line interface for the immunization pipeline.

Usage:
    vaxledger status
    vaxledger register-child --parent-id P-1 --national-id 1234567890 \
        --name "Sara Ali" --birth-date 2020-01-15 --gender female
    vaxledger record-dose --child-id CH1234567890-001 --vaccine BCG --dose 1 \
        --date 2020-01-16 --by DR-7 --location "Riyadh Central"
    vaxledger progress --child-id CH1234567890-001
    vaxledger issue-certificate --child-id CH1234567890-001 --type school_readiness
    vaxledger reward --child-id CH1234567890-001 --address 0x...

Every command prints JSON on stdout. Failures go to stderr with exit code 1.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

from vaxledger.config import DEFAULT_DATA_DIR, Settings
from vaxledger.errors import ConfigurationError
from vaxledger.models.certificate import CertificateType
from vaxledger.models.child import ParentRef
from vaxledger.service import ImmunizationService, ServiceResult


def _make_service(args: argparse.Namespace) -> ImmunizationService:
    """Create an ImmunizationService with durable persistence."""
    settings = Settings.from_env(args.env_file)
    overrides: dict[str, Any] = {}
    if args.data_dir is not None:
        overrides["data_dir"] = args.data_dir
    elif settings.data_dir is None:
        overrides["data_dir"] = DEFAULT_DATA_DIR
    if args.schedule is not None:
        overrides["schedule_path"] = args.schedule
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    return ImmunizationService.from_settings(settings)


def _emit(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    code = result.data.get("code", "ERROR")
    print(f"Failed [{code}]: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_register_child(args: argparse.Namespace) -> int:
    service = _make_service(args)
    parent = ParentRef(
        parent_id=args.parent_id,
        national_id=args.national_id,
        wallet_address=args.wallet,
    )
    return _emit(service.register_child(
        parent,
        full_name=args.name,
        birth_date=args.birth_date,
        gender=args.gender,
    ))


def cmd_record_dose(args: argparse.Namespace) -> int:
    service = _make_service(args)
    payload = {
        "child_id": args.child_id,
        "vaccine_name": args.vaccine,
        "dose_number": args.dose,
        "date_given": args.date,
        "administered_by": args.by,
        "location": args.location,
        "batch_number": args.batch,
        "notes": args.notes,
    }
    try:
        return _emit(service.record_dose(payload))
    finally:
        service.close()


def cmd_progress(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).progress(args.child_id, today=args.today))


def cmd_eligibility(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).eligibility(args.child_id, args.type, today=args.today))


def cmd_issue_certificate(args: argparse.Namespace) -> int:
    service = _make_service(args)
    result = service.issue_certificate(args.child_id, args.type, today=args.today)
    artifact = result.data.pop("artifact", None)
    if result.success and artifact and args.output:
        args.output.write_bytes(artifact)
        result.data["written_to"] = str(args.output)
    return _emit(result)


def cmd_anchor_certificate(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).anchor_certificate(args.child_id, args.type))


def cmd_verify_certificate(args: argparse.Namespace) -> int:
    result = _make_service(args).verify_certificate(args.child_id, args.type)
    code = _emit(result)
    if code == 0 and not result.data.get("verified"):
        return 1
    return code


def cmd_reward_check(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).reward_eligibility(args.child_id))


def cmd_reward(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).award_reward(args.child_id, args.address))


def cmd_ledger_stats(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).ledger_stats())


def cmd_parent_tokens(args: argparse.Namespace) -> int:
    return _emit(_make_service(args).parent_token_info(args.address))


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vaxledger",
        description="VaxLedger — immunization records, certificates and rewards",
    )
    parser.add_argument("--env-file", type=Path, help="Path to a .env file")
    parser.add_argument("--data-dir", type=Path, help="Data directory (default: data/)")
    parser.add_argument("--schedule", type=Path, help="Schedule JSON file")
    sub = parser.add_subparsers(dest="command")

    cert_types = [t.value for t in CertificateType]
    verifiable_types = [t.value for t in CertificateType if t.verifiable]

    # status
    sub.add_parser("status", help="Show system status")

    # register-child
    p_reg = sub.add_parser("register-child", help="Register a child and initialize dose statuses")
    p_reg.add_argument("--parent-id", required=True, help="Parent record ID")
    p_reg.add_argument("--national-id", required=True, help="Parent national ID (10 digits)")
    p_reg.add_argument("--wallet", help="Parent wallet address")
    p_reg.add_argument("--name", required=True, help="Child full name")
    p_reg.add_argument("--birth-date", required=True, type=_iso_date, help="YYYY-MM-DD")
    p_reg.add_argument("--gender", required=True, choices=["male", "female"])

    # record-dose
    p_dose = sub.add_parser("record-dose", help="Record an administered dose")
    p_dose.add_argument("--child-id", required=True)
    p_dose.add_argument("--vaccine", required=True, help="Vaccine name as in the schedule")
    p_dose.add_argument("--dose", required=True, type=int, help="Dose number")
    p_dose.add_argument("--date", required=True, help="Date given (YYYY-MM-DD)")
    p_dose.add_argument("--by", required=True, help="Administering clinician ID")
    p_dose.add_argument("--location", required=True, help="Facility")
    p_dose.add_argument("--batch", help="Vaccine batch number")
    p_dose.add_argument("--notes", default="")

    # progress
    p_prog = sub.add_parser("progress", help="Show vaccination progress")
    p_prog.add_argument("--child-id", required=True)
    p_prog.add_argument("--today", type=_iso_date, help="Evaluation date (default: today)")

    # eligibility
    p_elig = sub.add_parser("eligibility", help="Check certificate eligibility")
    p_elig.add_argument("--child-id", required=True)
    p_elig.add_argument("--type", required=True, choices=cert_types)
    p_elig.add_argument("--today", type=_iso_date, help="Evaluation date (default: today)")

    # issue-certificate
    p_issue = sub.add_parser("issue-certificate", help="Issue a certificate")
    p_issue.add_argument("--child-id", required=True)
    p_issue.add_argument("--type", required=True, choices=cert_types)
    p_issue.add_argument("--today", type=_iso_date, help="Issue date (default: today)")
    p_issue.add_argument("--output", type=Path, help="Write the rendered PDF here")

    # anchor-certificate / verify-certificate
    for name, help_text in (
        ("anchor-certificate", "Anchor an uploaded certificate on the ledger"),
        ("verify-certificate", "Re-fetch a certificate and check its hash"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--child-id", required=True)
        p.add_argument("--type", required=True, choices=verifiable_types)

    # reward-check / reward
    p_rc = sub.add_parser("reward-check", help="Check reward eligibility")
    p_rc.add_argument("--child-id", required=True)

    p_rw = sub.add_parser("reward", help="Award the completion reward")
    p_rw.add_argument("--child-id", required=True)
    p_rw.add_argument("--address", required=True, help="Parent wallet address (0x...)")

    # ledger-stats
    sub.add_parser("ledger-stats", help="Show ledger statistics")

    # parent-tokens
    p_pt = sub.add_parser("parent-tokens", help="Show a parent wallet's reward balance")
    p_pt.add_argument("--address", required=True, help="Parent wallet address (0x...)")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "register-child": cmd_register_child,
        "record-dose": cmd_record_dose,
        "progress": cmd_progress,
        "eligibility": cmd_eligibility,
        "issue-certificate": cmd_issue_certificate,
        "anchor-certificate": cmd_anchor_certificate,
        "verify-certificate": cmd_verify_certificate,
        "reward-check": cmd_reward_check,
        "reward": cmd_reward,
        "ledger-stats": cmd_ledger_stats,
        "parent-tokens": cmd_parent_tokens,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except ConfigurationError as e:
        print(f"Configuration error [{e.code}]: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
