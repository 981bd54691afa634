from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parent.parent))

from healthrecords.errors import IngestionError
from healthrecords.gateway import ExtractionGateway
from healthrecords.normalize import normalize


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract a health document into the canonical result JSON")
    parser.add_argument("--file", required=True, help="Path to a PDF or plain-text health document")
    parser.add_argument("--out", required=True, help="Path to write JSON output")
    parser.add_argument("--raw", action="store_true", help="Write the model output before normalization")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    path = Path(args.file)
    content_type, _ = mimetypes.guess_type(path.name)
    try:
        outcome = ExtractionGateway().extract(path.name, content_type, path.read_bytes())
    except IngestionError as exc:
        parser.exit(1, f"{exc.code}: {exc}\n")

    result = outcome.payload if args.raw else normalize(outcome.payload).to_dict()
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(result, indent=2), encoding="utf-8")
    print(f"Wrote extraction JSON to {out_path}")


if __name__ == "__main__":
    main()
