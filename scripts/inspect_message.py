#!/usr/bin/env python
"""Assemble a message from a JSON template and show its MIME tree and diagnostics.

Usage:
    python scripts/inspect_message.py template.json data.jsonl          # First row
    python scripts/inspect_message.py template.json data.jsonl --row 3  # Row 3
    python scripts/inspect_message.py template.json data.jsonl --raw    # Print the full message

Template file format:
    {
        "subject": "Hello {{Name}}",
        "plain_text": "Dear {{Name}}, ...",
        "html_text": "",
        "addresses": [{"type": "From", "address": "news@example.com", "display_name": "News"},
                      {"type": "To", "address": "{{Email}}", "display_name": "{{Name}}"}],
        "file_attachments": [{"filename": "report.pdf", "mime_type": "application/pdf"}]
    }

Relative file names are resolved against the template's directory.
"""

import argparse
import json
import sys
from email.message import Message
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mergemail import FileAttachment, MailMergeMessage


def load_row(path: Path, index: int) -> dict:
    """Load data row at index from JSONL file."""
    with open(path) as f:
        for i, line in enumerate(f):
            if i == index:
                return json.loads(line)
    raise ValueError(f"Index {index} not found")


def load_template(path: Path) -> MailMergeMessage:
    """Build a message template from its JSON description."""
    with open(path) as f:
        description = json.load(f)

    message = MailMergeMessage(
        subject=description.get("subject", ""),
        plain_text=description.get("plain_text", ""),
        html_text=description.get("html_text", ""),
        file_attachments=[
            FileAttachment(
                item["filename"],
                item.get("display_name", ""),
                item.get("mime_type", "application/octet-stream"),
            )
            for item in description.get("file_attachments", [])
        ],
        file_base_dir=path.parent.absolute(),
    )
    for item in description.get("addresses", []):
        message.addresses.add(item["type"], item["address"], item.get("display_name", ""))
    return message


def print_tree(part: Message, depth: int = 0) -> None:
    """Print one line per MIME part, indented by nesting depth."""
    indent = "  " * depth
    details = []
    if part.get_filename():
        details.append(f"filename={part.get_filename()}")
    if part["Content-ID"]:
        details.append(f"cid={part['Content-ID']}")
    if part["Content-Transfer-Encoding"]:
        details.append(f"cte={part['Content-Transfer-Encoding']}")
    print(f"{indent}{part.get_content_type()}  {' '.join(details)}".rstrip())

    if part.is_multipart():
        for child in part.get_payload():
            print_tree(child, depth + 1)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("template", type=Path, help="JSON template description")
    parser.add_argument("data", type=Path, help="JSONL file with one data row per line")
    parser.add_argument("--row", type=int, default=0, help="Data row index")
    parser.add_argument("--raw", action="store_true", help="Print the full message source")
    args = parser.parse_args()

    message = load_template(args.template)
    row = load_row(args.data, args.row)

    result = message.assemble_with_metadata(row)

    print(f"Row #{args.row}")
    print("=" * 80)

    merged = result.message
    if merged is None and result.error is not None:
        merged = result.error.partial_message

    if merged is not None:
        print(f"Subject: {merged.subject}")
        print(f"From:    {', '.join(str(m) for m in merged.from_)}")
        print(f"To:      {', '.join(str(m) for m in merged.to)}")
        if merged.cc:
            print(f"Cc:      {', '.join(str(m) for m in merged.cc)}")
        if merged.bcc:
            print(f"Bcc:     {', '.join(str(m) for m in merged.bcc)}")
        for name, value in merged.headers:
            print(f"{name}: {value}")
        print()
        print("MIME TREE:")
        print_tree(merged.root, 1)
        print()

    if result.success:
        print("OK")
    else:
        print("DIAGNOSTICS:")
        for diagnostic in result.diagnostics:
            print(f"  {diagnostic.kind:<18} {diagnostic.message}")

    if args.raw and merged is not None:
        print()
        print("=" * 80)
        print(merged.as_mime_message().as_string())

    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
