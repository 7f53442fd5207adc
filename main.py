import argparse
import logging
import sys

from app import SigMakerApp, load_settings, save_settings, SETTINGS_FILE
from sigmaker import SignatureType

def parse_address(text: str) -> int:
    """Шестнадцатеричный адрес, с префиксом 0x или без него."""
    try:
        return int(text, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid address: {text!r}")

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create and search byte signatures in PE files.")
    parser.add_argument("file", help="PE file to analyze")
    parser.add_argument("--settings", default=SETTINGS_FILE, help="settings file (default: %(default)s)")
    parser.add_argument("--format", choices=[t.value for t in SignatureType], help="output format")
    parser.add_argument("--no-wildcards", action="store_true", help="do not wildcard operands")
    parser.add_argument("--continue-outside", action="store_true", help="continue when leaving function scope")
    parser.add_argument("--max-length", type=int, help="signature length before asking to continue")
    parser.add_argument("--top", type=int, help="number of xref signatures to print")
    parser.add_argument("--no-clipboard", action="store_true", help="do not copy the result to the clipboard")
    parser.add_argument("--no-prompt", action="store_true", help="fail instead of asking when a signature gets long")
    parser.add_argument("--save-settings", action="store_true", help="write the effective settings back")
    parser.add_argument("-v", "--verbose", action="store_true")

    actions = parser.add_subparsers(dest="action", required=True)
    unique = actions.add_parser("unique", help="create unique signature for an address")
    unique.add_argument("address", type=parse_address)
    xref = actions.add_parser("xref", help="find shortest xref signatures for an address")
    xref.add_argument("address", type=parse_address)
    code = actions.add_parser("range", help="copy the code in [start, end) as a signature")
    code.add_argument("start", type=parse_address)
    code.add_argument("end", type=parse_address)
    search = actions.add_parser("search", help="search for a signature")
    search.add_argument("signature")
    return parser

def apply_overrides(settings: dict, args: argparse.Namespace) -> dict:
    if args.format:
        settings["output_format"] = args.format
    if args.no_wildcards:
        settings["wildcard_operands"] = False
    if args.continue_outside:
        settings["continue_outside_function"] = True
    if args.max_length is not None:
        settings["max_signature_length"] = args.max_length
    if args.top is not None:
        settings["xref_top_count"] = args.top
    if args.no_clipboard:
        settings["copy_to_clipboard"] = False
    if args.no_prompt:
        settings["ask_longer_signature"] = False
    return settings

def run(args: argparse.Namespace) -> int:
    settings = apply_overrides(load_settings(args.settings), args)
    if args.save_settings:
        save_settings(settings, args.settings)

    app = SigMakerApp(settings)
    if not app.open_file(args.file):
        return 1

    if args.action == "unique":
        ok = app.print_signature_for_ea(args.address) is not None
    elif args.action == "xref":
        ok = bool(app.print_xref_signatures_for_ea(args.address))
    elif args.action == "range":
        ok = app.print_selected_code(args.start, args.end) is not None
    else:
        ok = bool(app.search_signature_string(args.signature))
    return 0 if ok else 2

def main(argv=None):
    """Главная функция для запуска генератора сигнатур из командной строки."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(message)s")
    try:
        sys.exit(run(args))
    except Exception:
        # Last resort: anything that was not handled inside the app.
        logging.getLogger(__name__).exception("Unexpected error")
        sys.exit(1)

if __name__ == "__main__":
    main()
