"""
CLI main entry point.
"""

import argparse
import codecs
import json
import logging
import re
import sys
from pathlib import Path

import yaml

from ..config import Config, create_default_config, load_config
from ..extractors import parse_nfe
from ..extractors.normalize import digits_only
from ..schemas import is_access_key, parse_access_key, to_draft
from ..services import IngestionError, InvoiceIngestionService, TenantContext
from ..state_store import StateStore

logger = logging.getLogger(__name__)

# Encoding named in the XML declaration, optionally after a UTF-8 BOM
XML_ENCODING_PATTERN = re.compile(
    rb"""^(?:\xef\xbb\xbf)?\s*<\?xml[^>]*?\bencoding\s*=\s*["']([A-Za-z0-9._-]+)["']"""
)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="nfe-intake",
        description="Import NF-e XML invoices as goods-receiving drafts",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    # parse command
    parse_parser = subparsers.add_parser(
        "parse", help="Parse an NF-e XML file and show the receiving draft"
    )
    parse_parser.add_argument("file", type=Path, help="NF-e XML file")
    parse_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the parsed invoice as JSON",
    )

    # import command
    import_parser = subparsers.add_parser(
        "import", help="Import an NF-e XML file as a receiving draft"
    )
    import_parser.add_argument("file", type=Path, help="NF-e XML file")
    import_parser.add_argument("--tenant", required=True, help="Tenant (organization) ID")
    import_parser.add_argument("--user", required=True, help="Acting user ID")
    import_parser.add_argument("--store", required=True, help="Destination store ID")
    import_parser.add_argument(
        "--billed-store",
        help="Billed store ID (default: same as --store)",
    )

    # load-catalog command
    catalog_parser = subparsers.add_parser(
        "load-catalog", help="Load suppliers and catalog items from a YAML file"
    )
    catalog_parser.add_argument("file", type=Path, help="YAML master data file")
    catalog_parser.add_argument("--tenant", required=True, help="Tenant (organization) ID")

    # status command
    status_parser = subparsers.add_parser("status", help="Show receiving counts by status")
    status_parser.add_argument("--tenant", required=True, help="Tenant (organization) ID")

    return parser


def _read_document(path: Path) -> str:
    """Decode a document with the encoding its XML declaration names (UTF-8 if none)."""
    raw = path.read_bytes()
    encoding = "utf-8"

    match = XML_ENCODING_PATTERN.match(raw)
    if match:
        declared = match.group(1).decode("ascii")
        try:
            encoding = codecs.lookup(declared).name
        except LookupError:
            logger.warning(f"Unknown XML encoding '{declared}' in {path}, decoding as UTF-8")

    if encoding == "utf-8":
        encoding = "utf-8-sig"
    return raw.decode(encoding, errors="replace")


def cmd_parse(file: Path, as_json: bool) -> int:
    """Parse a document without persisting anything."""
    if not file.exists():
        print(f"❌ File not found: {file}")
        return 1

    invoice = parse_nfe(_read_document(file))

    if as_json:
        print(json.dumps(invoice.to_dict(), indent=2, ensure_ascii=False))
        return 0

    draft = to_draft(invoice)
    print(f"📄 {file.name}")
    print("=" * 40)
    print(f"  Access key:     {draft.invoice_key or '-'}")
    if is_access_key(draft.invoice_key):
        components = parse_access_key(draft.invoice_key)
        if not components.has_valid_check_digit:
            print("  ⚠ Access key check digit does not match")
    print(f"  Number/series:  {draft.invoice_number or '-'}/{draft.invoice_series or '-'}")
    print(f"  Issue date:     {draft.issue_date or '-'}")
    print(f"  Supplier:       {draft.supplier_name or '-'} ({draft.supplier_tax_id or '-'})")
    print(f"  Lines:          {len(draft.items)}")
    print(f"  Installments:   {len(draft.payment_plan)}")
    print(f"  Products:       {draft.products_subtotal}")
    print(f"  Total:          {draft.total_amount}")

    for item in draft.items:
        print(f"    [{item.sequence}] {item.description} {item.quantity} x {item.unit_price}")

    if invoice.warnings:
        print()
        print("⚠️  Warnings:")
        for warning in invoice.warnings:
            print(f"   - {warning}")

    return 0


def cmd_import(
    config: Config,
    file: Path,
    tenant_id: str,
    user_id: str,
    store_id: str,
    billed_store_id: str | None,
) -> int:
    """Import one document."""
    if not file.exists():
        print(f"❌ File not found: {file}")
        return 1

    store = StateStore(config.state_db_path)
    service = InvoiceIngestionService(store, config)
    context = TenantContext(tenant_id=tenant_id, user_id=user_id)

    print(f"📥 Importing {file.name}...")
    try:
        outcome = service.import_invoice(
            context,
            destination_location_id=store_id,
            billed_location_id=billed_store_id or store_id,
            document=_read_document(file),
            file_name=file.name,
        )
    except IngestionError as e:
        print(f"❌ {e}")
        return 1

    print(f"  ✓ Receiving draft: {outcome.receiving.id}")
    print(f"  → Supplier matched: {'yes' if outcome.supplier_matched else 'no'}")
    print(f"  → Lines auto-matched: {outcome.items_auto_matched}/{len(outcome.items)}")
    if outcome.parse_warnings:
        print("⚠️  Warnings:")
        for warning in outcome.parse_warnings:
            print(f"   - {warning}")
    return 0


def _master_data_digits(value) -> str | None:
    # YAML reads an unquoted CNPJ/CPF as an int
    if value is None:
        return None
    return digits_only(str(value)) or None


def cmd_load_catalog(config: Config, file: Path, tenant_id: str) -> int:
    """Load supplier and item master data from YAML."""
    if not file.exists():
        print(f"❌ File not found: {file}")
        return 1

    with open(file) as f:
        data = yaml.safe_load(f) or {}

    store = StateStore(config.state_db_path)
    suppliers = 0
    items = 0
    with store.atomic():
        for supplier in data.get("suppliers", []):
            store.add_supplier(
                tenant_id=tenant_id,
                name=supplier["name"],
                tax_id=_master_data_digits(supplier.get("tax_id")),
                personal_tax_id=_master_data_digits(supplier.get("personal_tax_id")),
                is_active=supplier.get("is_active", True),
            )
            suppliers += 1
        for item in data.get("items", []):
            store.add_catalog_item(
                tenant_id=tenant_id,
                name=item["name"],
                barcode=str(item["barcode"]) if item.get("barcode") else None,
                sku=item.get("sku"),
                is_active=item.get("is_active", True),
            )
            items += 1

    print(f"✓ Loaded {suppliers} supplier(s) and {items} item(s)")
    return 0


def cmd_status(config: Config, tenant_id: str) -> int:
    """Show receiving counts."""
    store = StateStore(config.state_db_path)
    counts = store.count_receivings_by_status(tenant_id)

    print("\n📊 Receivings")
    print("=" * 40)
    for status in ("draft", "confirmed", "cancelled"):
        print(f"  {status.capitalize():<12} {counts.get(status, 0)}")
    print()

    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        create_default_config(parsed.config)
        print(f"✓ Wrote {parsed.config}")
        return 0

    if parsed.command == "parse":
        return cmd_parse(parsed.file, parsed.json)

    # Load config
    try:
        config = load_config(parsed.config)
        config.validate_or_raise()
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    if parsed.command == "import":
        return cmd_import(
            config,
            parsed.file,
            tenant_id=parsed.tenant,
            user_id=parsed.user,
            store_id=parsed.store,
            billed_store_id=parsed.billed_store,
        )
    elif parsed.command == "load-catalog":
        return cmd_load_catalog(config, parsed.file, parsed.tenant)
    elif parsed.command == "status":
        return cmd_status(config, parsed.tenant)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
