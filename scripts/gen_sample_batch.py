#!/usr/bin/env python3
"""Sample batch generator for trying out the importer end to end.

Writes a filled admission spreadsheet (Students sheet, registry labels as headers) and
optionally a documents ZIP following the {AdmissionNumber}_{Document}.{ext} naming.
A share of rows can be made invalid on purpose to exercise the review flow.
"""
from __future__ import annotations

import argparse
import sys
import zipfile
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from admission_import.excel.template import STUDENTS_SHEET
from admission_import.schema.registry import DEFAULT_REGISTRY, ENUMS

FIRST_NAMES = ["Aarav", "Vivaan", "Aditya", "Diya", "Ananya", "Ishaan", "Saanvi", "Kabir", "Meera", "Rohan"]
LAST_NAMES = ["Sharma", "Verma", "Iyer", "Reddy", "Khan", "Das", "Patel", "Nair", "Singh", "Gupta"]
CITIES = [("New Delhi", "Delhi"), ("Mumbai", "Maharashtra"), ("Chennai", "Tamil Nadu"), ("Pune", "Maharashtra")]
DOCUMENT_NAMES = ["Photo", "Aadhar", "Father_Photo", "Father_Aadhar", "Mother_Photo", "Mother_Aadhar"]


def _digits(rng: np.random.Generator, n: int, first: int = 6) -> str:
    return str(first) + "".join(str(d) for d in rng.integers(0, 10, n - 1))


def generate_rows(rows: int, *, invalid_ratio: float = 0.0, year: int = 2025, seed: int = 42) -> pd.DataFrame:
    """Synthetic student rows keyed by field key."""
    rng = np.random.default_rng(seed)
    records: list[dict[str, Any]] = []
    for i in range(rows):
        last = str(rng.choice(LAST_NAMES))
        city, state = CITIES[int(rng.integers(0, len(CITIES)))]
        has_prev = bool(rng.random() < 0.3)
        dob = pd.Timestamp(f"{year - 10}-01-01") + pd.Timedelta(days=int(rng.integers(0, 1500)))
        rec = {
            "admissionNo": f"STU-{year}-{i + 1:05d}",
            "firstName": str(rng.choice(FIRST_NAMES)),
            "lastName": last,
            "gender": str(rng.choice(ENUMS["Genders"][:2])),
            "dob": dob.strftime("%Y-%m-%d"),
            "bloodGroup": str(rng.choice(ENUMS["BloodGroups"])),
            "category": str(rng.choice(ENUMS["Categories"])),
            "nationality": "Indian",
            "admissionClass": str(rng.choice(ENUMS["Classes"])),
            "section": str(rng.choice(ENUMS["Sections"])),
            "currentYear": f"{year}-{year + 1}",
            "fatherName": f"{rng.choice(FIRST_NAMES)} {last}",
            "fatherMobile": _digits(rng, 10, 9),
            "fatherAadhar": _digits(rng, 12, 2),
            "motherName": f"{rng.choice(FIRST_NAMES)} {last}",
            "motherMobile": _digits(rng, 10, 8),
            "motherAadhar": _digits(rng, 12, 3),
            "includeGuardian": "No",
            "primaryContact": "father",
            "permStreet": f"{int(rng.integers(1, 200))} Main Road",
            "permCity": city,
            "permState": state,
            "permPincode": _digits(rng, 6, 4),
            "permCountry": "India",
            "sameAsPermanent": "Yes",
            "hasPreviousSchool": "Yes" if has_prev else "No",
        }
        if has_prev:
            rec["previousSchoolName"] = f"{city} Public School"
            rec["lastClassAttended"] = "3"
        if rng.random() < invalid_ratio:
            rec["dob"] = "31/02/2015"  # not a calendar date
        records.append(rec)
    return pd.DataFrame.from_records(records, columns=DEFAULT_REGISTRY.keys).fillna("")


def write_workbook(df: pd.DataFrame, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    labeled = df.rename(columns={f.key: f.label for f in DEFAULT_REGISTRY.fields})
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        labeled.to_excel(writer, sheet_name=STUDENTS_SHEET, index=False)


def write_archive(df: pd.DataFrame, archive_path: Path) -> int:
    """Tiny placeholder documents for every row. Returns the number of entries."""
    count = 0
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for _, row in df.iterrows():
            names = list(DOCUMENT_NAMES)
            if row["hasPreviousSchool"] == "Yes":
                names.append("TC")
            for name in names:
                ext = "pdf" if name in ("Aadhar", "TC") or name.endswith("Aadhar") else "jpg"
                zf.writestr(f"{row['admissionNo']}_{name}.{ext}", f"sample {name}".encode())
                count += 1
    return count


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate a sample admission batch (spreadsheet + optional documents ZIP)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s batch.xlsx --rows 200
  %(prog)s batch.xlsx --rows 50 --archive docs.zip --invalid-ratio 0.1
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx path")
    parser.add_argument("--rows", type=int, default=100, help="Number of students (default: 100)")
    parser.add_argument("--archive", type=Path, default=None, help="Also write a documents ZIP")
    parser.add_argument("--invalid-ratio", type=float, default=0.0, help="Share of rows made invalid")
    parser.add_argument("--year", type=int, default=2025, help="Academic start year (default: 2025)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0.0 <= args.invalid_ratio <= 1.0:
        print("Error: --invalid-ratio must be between 0 and 1", file=sys.stderr)
        return 1

    df = generate_rows(args.rows, invalid_ratio=args.invalid_ratio, year=args.year, seed=args.seed)
    write_workbook(df, args.output)
    print(f"Created spreadsheet: {args.output} ({len(df)} rows)")
    if args.archive is not None:
        entries = write_archive(df, args.archive)
        print(f"Created archive: {args.archive} ({entries} documents)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
