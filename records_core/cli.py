# =============================================================================
# records_core/cli.py
# Command Line Driver over the Patient Store
# =============================================================================
"""
clinic-records - operate on patient records from a terminal.

Examples:
    clinic-records list
    clinic-records add-patient --name Alice --age 30 --sex Female
    clinic-records add-visit <patient-id> --date 2024-01-01 --diagnosis Fracture --image scan.png
    clinic-records --offline search fracture --sort age
    clinic-records export patients.csv
"""

from __future__ import annotations
import argparse
import base64
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from records_core.api.config_manager import APIConfigManager
from records_core.errors import NotFoundError, RecordsError, ValidationError
from records_core.logging import setup_logging
from records_core.models import (
    NewVisit,
    Patient,
    PatientFields,
    Sex,
    UPDATABLE_FIELDS,
    VisitFile,
)
from records_core.offline import PatientFilter, PatientStore, SORT_KEYS, build_patient_store

SUMMARY_COLUMNS = ["id", "name", "age", "sex", "diagnosis", "visit_count", "last_visit"]


def _number(text: str):
    """Parse an age, keeping whole numbers as int."""
    try:
        value = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {text!r}")
    return int(value) if value.is_integer() else value


def _read_base64(path: str) -> str:
    return base64.b64encode(Path(path).read_bytes()).decode("ascii")


def _parse_assignments(assignments: Sequence[str]) -> Dict[str, Any]:
    """field=value pairs from --set, with age converted to a number."""
    changes: Dict[str, Any] = {}
    for item in assignments:
        name, sep, value = item.partition("=")
        if not sep:
            raise ValidationError(f"Expected field=value, got {item!r}")
        name = name.strip()
        if name == "age":
            try:
                changes[name] = _number(value)
            except argparse.ArgumentTypeError as e:
                raise ValidationError(str(e), field="age")
        else:
            changes[name] = value
    return changes


def _print_table(store: PatientStore, patients: List[Patient]) -> None:
    if not patients:
        print("No patients found.")
        return
    df = store.to_dataframe()
    df = df[df["id"].isin([p.id for p in patients])]
    order = {p.id: i for i, p in enumerate(patients)}
    df = df.sort_values("id", key=lambda ids: ids.map(order))
    print(df[SUMMARY_COLUMNS].to_string(index=False))


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2))


# =============================================================================
# COMMANDS
# =============================================================================

def cmd_list(store: PatientStore, args) -> None:
    _print_table(store, store.patients)


def cmd_show(store: PatientStore, args) -> None:
    patient = store.get_patient(args.patient_id)
    if patient is None:
        raise NotFoundError(
            f"Patient {args.patient_id} not found",
            entity="patient",
            entity_id=args.patient_id,
        )
    _print_json(patient.to_dict())


def cmd_search(store: PatientStore, args) -> None:
    criteria = PatientFilter(
        sex=args.sex,
        age_min=args.age_min,
        age_max=args.age_max,
        sort_by=args.sort,
    )
    results = store.find_patients(args.query, criteria)
    # Remote hits may not be in the mirror yet
    if any(store.get_cached_patient(p.id) is None for p in results):
        _print_json([p.to_dict() for p in results])
    else:
        _print_table(store, results)


def cmd_add_patient(store: PatientStore, args) -> None:
    patient_id = store.add_patient(PatientFields(
        name=args.name,
        age=args.age,
        sex=args.sex,
        contact=args.contact,
        diagnosis=args.diagnosis,
        notes=args.notes,
    ))
    print(patient_id)


def cmd_update(store: PatientStore, args) -> None:
    store.update_patient(args.patient_id, _parse_assignments(args.set))
    print(f"Updated {args.patient_id}")


def cmd_delete(store: PatientStore, args) -> None:
    store.delete_patient(args.patient_id)
    print(f"Deleted {args.patient_id}")


def cmd_add_visit(store: PatientStore, args) -> None:
    attachment = None
    if args.file:
        content_type, _ = mimetypes.guess_type(args.file)
        attachment = VisitFile(
            data=_read_base64(args.file),
            name=Path(args.file).name,
            content_type=content_type or "application/octet-stream",
        )

    visit_id = store.add_visit(args.patient_id, NewVisit(
        date=args.date,
        diagnosis=args.diagnosis,
        prescription=args.prescription,
        notes=args.notes,
        xray_required=args.xray,
        images=[_read_base64(path) for path in args.image],
        file=attachment,
    ))
    print(visit_id)


def cmd_download(store: PatientStore, args) -> None:
    download = store.download_visit_file(args.visit_id)
    if download is None:
        raise NotFoundError(
            f"Visit {args.visit_id} has no file",
            entity="visit_file",
            entity_id=args.visit_id,
        )

    output = Path(args.output or download.filename or f"visit_{args.visit_id}")
    output.write_bytes(download.content)
    print(f"Saved {len(download.content)} bytes to {output}")


def cmd_export(store: PatientStore, args) -> None:
    df = store.to_dataframe()
    df.to_csv(args.path, index=False)
    print(f"Exported {len(df)} patients to {args.path}")


def cmd_status(store: PatientStore, args) -> None:
    _print_json(store.get_status())


# =============================================================================
# PARSER
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clinic-records",
        description="Manage clinic patient records with offline fallback",
    )
    parser.add_argument("--provider", help="Record service connector (http or mock)")
    parser.add_argument("--api-url", help="Record service base URL")
    parser.add_argument("--cache-path", help="Local cache database file")
    parser.add_argument("--config", help="TOML configuration file")
    parser.add_argument("--offline", action="store_true", help="Work from the local cache only")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="List mirrored patients")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("show", help="Show one patient with visits")
    p.add_argument("patient_id")
    p.set_defaults(func=cmd_show)

    p = sub.add_parser("search", help="Search name, diagnosis and notes")
    p.add_argument("query", nargs="?", default="")
    p.add_argument("--sex", choices=[s.value for s in Sex])
    p.add_argument("--age-min", type=_number)
    p.add_argument("--age-max", type=_number)
    p.add_argument("--sort", choices=SORT_KEYS, default="name")
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("add-patient", help="Create a patient")
    p.add_argument("--name", required=True)
    p.add_argument("--age", type=_number, required=True)
    p.add_argument("--sex", required=True, choices=[s.value for s in Sex])
    p.add_argument("--contact")
    p.add_argument("--diagnosis")
    p.add_argument("--notes")
    p.set_defaults(func=cmd_add_patient)

    p = sub.add_parser("update", help="Partially update a patient")
    p.add_argument("patient_id")
    p.add_argument(
        "--set", action="append", default=[], metavar="FIELD=VALUE",
        help=f"Field to change, one of: {', '.join(UPDATABLE_FIELDS)}",
    )
    p.set_defaults(func=cmd_update)

    p = sub.add_parser("delete", help="Delete a patient and its visits")
    p.add_argument("patient_id")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("add-visit", help="Record a visit for a patient")
    p.add_argument("patient_id")
    p.add_argument("--date", required=True)
    p.add_argument("--diagnosis")
    p.add_argument("--prescription")
    p.add_argument("--notes")
    p.add_argument("--xray", action="store_true", help="X-ray required")
    p.add_argument("--image", action="append", default=[], metavar="PATH")
    p.add_argument("--file", metavar="PATH", help="Attach one file")
    p.set_defaults(func=cmd_add_visit)

    p = sub.add_parser("download", help="Download the file attached to a visit")
    p.add_argument("visit_id")
    p.add_argument("-o", "--output")
    p.set_defaults(func=cmd_download)

    p = sub.add_parser("export", help="Write the patient summary to CSV")
    p.add_argument("path")
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("status", help="Show connection and cache status")
    p.set_defaults(func=cmd_status)

    return parser


def _log_level(args, config_manager: APIConfigManager) -> int:
    if args.verbose >= 2:
        return logging.DEBUG
    if args.verbose == 1:
        return logging.INFO
    level = logging.getLevelName(config_manager.get_log_level())
    return level if isinstance(level, int) else logging.WARNING


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config_manager = APIConfigManager(config_path=args.config)
        setup_logging(_log_level(args, config_manager), stream=sys.stderr)

        if args.api_url:
            config_manager.configs["records"]["base_url"] = args.api_url

        store = build_patient_store(
            config_manager,
            provider=args.provider,
            cache_path=args.cache_path,
            load=False,
        )
        if args.offline:
            store.force_offline()
        store.load()

        args.func(store, args)
    except RecordsError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
