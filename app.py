import json
import logging
from typing import Callable, Dict, List, Optional

from sigmaker import (
    Answer,
    BinaryImage,
    Session,
    SignatureError,
    SignatureType,
    build_ida_signature_string,
    build_range_signature,
    format_signature,
    grow_unique_signature,
    rank_xref_signatures,
    search_signature,
)
from sigmaker.image import is_x86_machine, machine_name
from utils import clipboard
from utils.progress import CancellationFlag, ProgressReporter

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"


def get_default_settings() -> Dict:
    """Default settings, overridden by settings.json and then by command line flags."""
    return {
        "output_format": SignatureType.IDA_STYLE.value,
        "wildcard_operands": True,
        "continue_outside_function": False,
        "max_signature_length": 1000,
        "ask_longer_signature": True,
        "xref_max_length": 250,
        "xref_top_count": 5,
        "copy_to_clipboard": True,
        "use_prologue_heuristic": True,
        "use_separator_heuristic": True,
        "use_padding_heuristic": True,
    }

def load_settings(path: str = SETTINGS_FILE) -> Dict:
    defaults = get_default_settings()
    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded_settings = json.load(f)
            defaults.update(loaded_settings)
    except (FileNotFoundError, json.JSONDecodeError):
        pass # defaults
    return defaults

def save_settings(settings: Dict, path: str = SETTINGS_FILE) -> bool:
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(settings, f, indent=4)
    except OSError as e:
        logger.error("Failed to save settings to %s: %s", path, e)
        return False
    return True

def console_confirm(message: str) -> Answer:
    """Yes/No/Cancel question on the terminal. Empty input means Yes."""
    try:
        reply = input(f"{message} [Y/n/c] ").strip().lower()
    except EOFError:
        return Answer.CANCEL
    if reply in ("", "y", "yes"):
        return Answer.YES
    if reply in ("n", "no"):
        return Answer.NO
    return Answer.CANCEL


class SigMakerApp:
    """The four signature actions on top of one loaded image."""

    def __init__(
        self,
        settings: Optional[Dict] = None,
        confirm: Callable[[str], Answer] = console_confirm,
        copy_text: Callable[[str], bool] = clipboard.copy_text,
    ):
        self.settings = settings if settings is not None else load_settings()
        self.confirm = confirm
        self.copy_text = copy_text
        self.cancel_flag = CancellationFlag()
        self.session: Optional[Session] = None

    def _import_pefile(self):
        """Imports pefile and reports a readable error if it is missing."""
        try:
            import pefile
            return pefile
        except ImportError:
            logger.error(
                "Library 'pefile' not found.\n"
                "Install it with:\n"
                "pip install pefile"
            )
            return None

    def open_file(self, filepath: str) -> bool:
        pefile = self._import_pefile()
        if not pefile:
            return False
        try:
            pe = pefile.PE(filepath)
        except pefile.PEFormatError as e:
            logger.error("File is not a valid PE file.\n%s", e)
            return False
        except FileNotFoundError:
            logger.error("File not found: '%s'", filepath)
            return False

        if not is_x86_machine(pe):
            logger.error("Unsupported machine type %s: only x86 and x64 code can be decoded.", machine_name(pe))
            return False

        logger.info("Analyzing %s...", filepath)
        self.load_image(BinaryImage.from_pe(pe))
        return True

    def load_image(self, image: BinaryImage) -> Session:
        self.session = Session.from_image(
            image,
            self.settings,
            confirm_continue=self.confirm,
            report_progress=ProgressReporter("xref", logger),
            is_cancelled=self.cancel_flag.is_cancelled,
        )
        return self.session

    @property
    def sig_type(self) -> SignatureType:
        return SignatureType(self.settings.get("output_format", SignatureType.IDA_STYLE.value))

    def _copy(self, text: str) -> None:
        if not self.settings.get("copy_to_clipboard", True):
            return
        if not self.copy_text(text):
            logger.error("Failed to copy to clipboard!")

    def print_signature_for_ea(self, ea: int) -> Optional[str]:
        """Action 1: shortest unique signature starting at ``ea``."""
        try:
            with self.cancel_flag:
                signature = grow_unique_signature(
                    self.session, ea,
                    self.settings.get("wildcard_operands", True),
                    self.settings.get("continue_outside_function", False),
                    max_length=self.settings.get("max_signature_length", 1000),
                    prompt_on_overflow=self.settings.get("ask_longer_signature", True),
                )
        except SignatureError as e:
            logger.error("Error: %s", e)
            return None

        signature_str = format_signature(signature, self.sig_type)
        logger.info("Signature for %X: %s", ea, signature_str)
        self._copy(signature_str)
        return signature_str

    def print_xref_signatures_for_ea(self, ea: int) -> List[str]:
        """Action 2: the shortest signatures among the code references to ``ea``."""
        try:
            with self.cancel_flag:
                xref_signatures = rank_xref_signatures(
                    self.session, ea,
                    self.settings.get("wildcard_operands", True),
                    self.settings.get("continue_outside_function", False),
                    max_length=self.settings.get("xref_max_length", 250),
                )
        except SignatureError as e:
            logger.error("Error: %s", e)
            return []

        if not xref_signatures:
            logger.info("No XREFs have been found for your address")
            return []

        top_length = min(self.settings.get("xref_top_count", 5), len(xref_signatures))
        logger.info("Top %d Signatures out of %d xrefs for %X:", top_length, len(xref_signatures), ea)
        results = []
        for i, (origin_address, signature) in enumerate(xref_signatures[:top_length]):
            signature_str = format_signature(signature, self.sig_type)
            logger.info("XREF Signature #%d @ %X: %s", i + 1, origin_address, signature_str)
            results.append(signature_str)

        # Only the shortest one goes to the clipboard.
        self._copy(results[0])
        return results

    def print_selected_code(self, start: int, end: int) -> Optional[str]:
        """Action 3: the bytes of ``[start, end)`` as a signature."""
        try:
            with self.cancel_flag:
                signature = build_range_signature(self.session, start, end, self.settings.get("wildcard_operands", True))
        except SignatureError as e:
            logger.error("Error: %s", e)
            return None

        signature_str = format_signature(signature, self.sig_type)
        logger.info("Code for %X-%X: %s", start, end, signature_str)
        self._copy(signature_str)
        return signature_str

    def search_signature_string(self, text: str) -> List[int]:
        """Action 4: parse pasted signature text and list every match."""
        try:
            signature, matches = search_signature(self.session.image, text)
        except SignatureError as e:
            logger.error("Error: %s", e)
            return []

        logger.info("Signature: %s", build_ida_signature_string(signature))
        if not matches:
            logger.info("Signature does not match!")
            return []
        for ea in matches:
            logger.info("Match @ %X", ea)
        return matches
