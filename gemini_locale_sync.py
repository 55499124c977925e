#!/usr/bin/env python3

import os
import copy
import json
import argparse
import logging
import time
import sys
from typing import Dict, Any, Optional
from pathlib import Path
import requests
from dotenv import load_dotenv
from colorama import init, Fore, Style

init()  # Initialize colorama

# Set up logging with color
class ColoredFormatter(logging.Formatter):
    """Custom formatter to add colors to log levels."""
    FORMATS = {
        logging.DEBUG: Style.DIM + "%(asctime)s - %(name)s - %(levelname)s - %(message)s" + Style.RESET_ALL,
        logging.INFO: Fore.GREEN + "%(asctime)s - %(name)s - %(levelname)s - %(message)s" + Style.RESET_ALL,
        logging.WARNING: Fore.YELLOW + "%(asctime)s - %(name)s - %(levelname)s - %(message)s" + Style.RESET_ALL,
        logging.ERROR: Fore.RED + "%(asctime)s - %(name)s - %(levelname)s - %(message)s" + Style.RESET_ALL,
        logging.CRITICAL: Fore.RED + Style.BRIGHT + "%(asctime)s - %(name)s - %(levelname)s - %(message)s" + Style.RESET_ALL,
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)

# Set up logging
logger = logging.getLogger("gemini-locale-sync")
logger.setLevel(logging.DEBUG)

# Console handler with colored output
console_handler = logging.StreamHandler()
console_handler.setLevel(logging.INFO)
console_handler.setFormatter(ColoredFormatter())
logger.addHandler(console_handler)

# Version information
__version__ = "1.0.0"

# Gemini API defaults
API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash"
DEFAULT_TEMPERATURE = 1.5
TOP_P = 0.95
TOP_K = 40
MAX_OUTPUT_TOKENS = 1000
REQUEST_TIMEOUT = 60

# Seconds to wait after each successful call, and before the first retry on 429
REQUEST_DELAY = 1.0
RATE_LIMIT_DELAY = 5.0
MAX_BACKOFF = 60.0
MAX_RETRIES = 5


class LocaleSyncError(Exception):
    """Base class for errors raised by the locale sync tool."""


class LocaleFileError(LocaleSyncError):
    """A locale file could not be read, parsed or written."""


class TranslationError(LocaleSyncError):
    """A translation request failed and cannot be retried."""


class RateLimitError(TranslationError):
    """The API rejected a request because the quota was exhausted (HTTP 429)."""


def print_box(message, style=Fore.BLUE):
    """Print a message in a styled box."""
    width = min(len(message) + 4, 80)
    print(f"{style}╔{'═' * (width - 2)}╗{Style.RESET_ALL}")
    print(f"{style}║{' ' * (width - 2)}║{Style.RESET_ALL}")
    print(f"{style}║  {message}{' ' * (width - len(message) - 4)}║{Style.RESET_ALL}")
    print(f"{style}║{' ' * (width - 2)}║{Style.RESET_ALL}")
    print(f"{style}╚{'═' * (width - 2)}╝{Style.RESET_ALL}")

def resolve_path(path_str: str) -> Path:
    """
    Resolve a path string to an absolute Path.
    If the path is relative, it will be resolved relative to the current working directory.
    """
    path = Path(path_str)
    if not path.is_absolute():
        path = Path.cwd() / path
    return path.resolve()

def truncate(text: str, limit: int = 70) -> str:
    return text if len(text) < limit else text[:limit - 3] + "..."


class GeminiTranslator:
    """Class to handle translation using the Gemini generateContent API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_retries: int = MAX_RETRIES,
        request_delay: float = REQUEST_DELAY,
        rate_limit_delay: float = RATE_LIMIT_DELAY,
        max_backoff: float = MAX_BACKOFF,
        timeout: float = REQUEST_TIMEOUT,
        base_url: str = API_BASE_URL,
    ):
        """Initialize the translator with the Gemini API key and sampling settings."""
        if not api_key:
            logger.warning("GOOGLE_API_KEY is not set, every translation request will fail")
        self.api_key = api_key or ""
        self.model = model
        self.temperature = temperature
        self.max_retries = max_retries
        self.request_delay = request_delay
        self.rate_limit_delay = rate_limit_delay
        self.max_backoff = max_backoff
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        logger.debug(f"Gemini translator initialized with model {model}")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_payload(self, text: str, source_lang: str, dest_lang: str) -> Dict[str, Any]:
        """Build the generateContent request body for a single string."""
        instruction = (
            f"You are a helpful assistant that translates {source_lang} to {dest_lang}. "
            f"Only return the {dest_lang} translation, nothing else."
        )
        return {
            "systemInstruction": {"parts": [{"text": instruction}]},
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "topP": TOP_P,
                "topK": TOP_K,
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
                "candidateCount": 1,
                "responseMimeType": "application/json",
                "responseSchema": {"type": "STRING"},
            },
        }

    def _request(self, text: str, source_lang: str, dest_lang: str) -> str:
        """Send one request and return the translated string."""
        try:
            response = requests.post(
                self.endpoint,
                headers={"x-goog-api-key": self.api_key},
                json=self.build_payload(text, source_lang, dest_lang),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TranslationError(f"Request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(f"HTTP 429: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError as e:
            raise TranslationError(f"HTTP {response.status_code}: response is not JSON") from e

        error = body.get("error") if isinstance(body, dict) else None
        if error and not isinstance(error, dict):
            raise TranslationError(f"API error: {error}")
        if error:
            if error.get("code") == 429 or error.get("status") == "RESOURCE_EXHAUSTED":
                raise RateLimitError(error.get("message", "Rate limit reached"))
            raise TranslationError(f"API error {error.get('code')}: {error.get('message')}")

        if not response.ok:
            raise TranslationError(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            raw = body["candidates"][0]["content"]["parts"][0]["text"]
            translation = json.loads(raw)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise TranslationError(f"Unexpected response shape: {e}") from e

        if not isinstance(translation, str):
            raise TranslationError(f"Expected a JSON string, got {type(translation).__name__}")
        return translation

    def translate(self, text: str, source_lang: str, dest_lang: str) -> str:
        """
        Translate a single string from source_lang to dest_lang.

        Rate-limited requests are retried with exponential backoff, up to
        max_retries times. Any other failure, or running out of retries,
        returns the original text. This method never raises.
        """
        attempt = 0
        while True:
            try:
                translation = self._request(text, source_lang, dest_lang)
            except RateLimitError as e:
                if attempt >= self.max_retries:
                    logger.error(f"Rate limit still reached after {attempt} retries, keeping original text: {truncate(text)}")
                    return text
                delay = min(self.rate_limit_delay * (2 ** attempt), self.max_backoff)
                attempt += 1
                logger.warning(f"Rate limit reached, waiting {delay:g} seconds (retry {attempt}/{self.max_retries})...")
                logger.debug(f"Rate limit details: {e}")
                time.sleep(delay)
                continue
            except TranslationError as e:
                logger.error(f"Translation error: {e}")
                return text

            logger.debug(f"Translating: {truncate(text)} -> {truncate(translation)}")
            # Stay under the per-minute quota
            time.sleep(self.request_delay)
            return translation


class SyncStats:
    """Exact counters accumulated while merging a source tree."""

    def __init__(self):
        self.source_leaves = 0
        self.translated = 0
        self.kept = 0
        self.failed = 0  # came back identical to the source text
        self.copied = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "source_leaves": self.source_leaves,
            "translated": self.translated,
            "kept": self.kept,
            "failed": self.failed,
            "copied": self.copied,
        }

    def __repr__(self):
        fields = ", ".join(f"{k}={v}" for k, v in self.as_dict().items())
        return f"SyncStats({fields})"


class LocaleMerger:
    """
    Merge a source locale tree into a destination tree, translating leaves
    that the destination is missing.

    The merge is pure: neither input is modified. Keys that only exist in
    the destination keep their value and position; source-only keys are
    appended in source order.
    """

    def __init__(self, translator, source_lang: str, dest_lang: str, retranslate_empty: bool = False, dry_run: bool = False):
        self.translator = translator
        self.source_lang = source_lang
        self.dest_lang = dest_lang
        self.retranslate_empty = retranslate_empty
        self.dry_run = dry_run
        self.stats = SyncStats()

    def is_missing(self, destination: Dict[str, Any], key: str) -> bool:
        """Whether destination has no usable value for key."""
        if key not in destination or destination[key] is None:
            return True
        value = destination[key]
        return self.retranslate_empty and isinstance(value, str) and not value.strip()

    def merge(self, destination: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
        """Return the merge of source into destination."""
        return self._merge(destination, source, "")

    def _merge(self, destination: Dict[str, Any], source: Dict[str, Any], key_path: str) -> Dict[str, Any]:
        result = {k: copy.deepcopy(v) for k, v in destination.items()}

        for key, value in source.items():
            current_path = f"{key_path}.{key}" if key_path else key

            if isinstance(value, dict):
                existing = destination.get(key)
                if existing is not None and not isinstance(existing, dict):
                    logger.warning(f"Replacing non-object value at {current_path} to mirror the source structure")
                    existing = None
                result[key] = self._merge(existing or {}, value, current_path)
                continue

            if isinstance(value, str):
                self.stats.source_leaves += 1

            if not self.is_missing(destination, key):
                logger.debug(f"Skipping existing translation: {current_path}")
                if isinstance(value, str):
                    self.stats.kept += 1
                continue

            if not isinstance(value, str) or not value.strip():
                # Lists, numbers, booleans, null and blank strings are never sent for translation
                result[key] = copy.deepcopy(value)
                self.stats.copied += 1
                continue

            if self.dry_run:
                logger.info(f"Would translate {current_path}: {truncate(value)}")
                self.stats.translated += 1
                continue

            translation = self.translator.translate(value, self.source_lang, self.dest_lang)
            result[key] = translation
            if translation == value:
                self.stats.failed += 1
            else:
                self.stats.translated += 1
            logger.info(f"Translated {current_path}: {truncate(value)} -> {truncate(translation)}")

        return result


def load_locale_file(path: Path, required: bool = True) -> Dict[str, Any]:
    """
    Load a locale file containing a single JSON object.

    A required file that is missing, unreadable or not an object raises
    LocaleFileError. An optional file in that state yields an empty dict.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        if required:
            raise LocaleFileError(f"Source file not found: {path}") from e
        logger.info(f"No existing translations found at {path}, creating new file")
        return {}
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        if required:
            raise LocaleFileError(f"Could not read {path}: {e}") from e
        logger.warning(f"Could not parse existing file {path}, will create new file")
        return {}

    if not isinstance(data, dict):
        if required:
            raise LocaleFileError(f"{path} must contain a JSON object, got {type(data).__name__}")
        logger.warning(f"Existing file {path} does not contain a JSON object, will create new file")
        return {}
    return data

def save_locale_file(path: Path, data: Dict[str, Any]) -> None:
    """Write data as indented UTF-8 JSON, replacing path in one step."""
    temp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except (OSError, ValueError) as e:
        raise LocaleFileError(f"Could not write {path}: {e}") from e
    finally:
        if temp_path.exists():
            temp_path.unlink()

def create_translator(
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    temperature: float = DEFAULT_TEMPERATURE,
    max_retries: int = MAX_RETRIES,
) -> GeminiTranslator:
    """Build a translator, reading missing settings from the environment (.env is loaded)."""
    load_dotenv()
    if not api_key:
        api_key = os.getenv("GOOGLE_API_KEY", "")
    if not model:
        model = os.getenv("GEMINI_MODEL", DEFAULT_MODEL)
    return GeminiTranslator(api_key, model=model, temperature=temperature, max_retries=max_retries)

def sync_translations(
    src_lang: str,
    dest_lang: str,
    src_path: str,
    dest_path: str,
    translator=None,
    retranslate_empty: bool = False,
    dry_run: bool = False,
) -> SyncStats:
    """
    Fill every key of the source locale file that is missing from the
    destination file and write the merged result back to dest_path.

    Args:
        src_lang: Source language, as passed to the model (e.g. "en")
        dest_lang: Destination language (e.g. "vi")
        src_path: Path to the source locale file; must exist
        dest_path: Path to the destination locale file; created if missing
        translator: Object with translate(text, src_lang, dest_lang); built from the environment if omitted
        retranslate_empty: Treat empty destination strings as missing
        dry_run: Report what would be translated without calling the API or writing

    Returns:
        The statistics collected during the merge.
    """
    source_file = resolve_path(src_path)
    dest_file = resolve_path(dest_path)

    source_data = load_locale_file(source_file, required=True)
    dest_data = load_locale_file(dest_file, required=False)

    if translator is None and not dry_run:
        translator = create_translator()

    print(f"{Fore.MAGENTA}Translating from {src_lang} to {dest_lang}: {source_file} -> {dest_file}{Style.RESET_ALL}")
    merger = LocaleMerger(translator, src_lang, dest_lang, retranslate_empty=retranslate_empty, dry_run=dry_run)
    merged = merger.merge(dest_data, source_data)

    if dry_run:
        print(f"{Fore.YELLOW}DRY RUN: {merger.stats.translated} strings would be translated, {dest_file} was not modified{Style.RESET_ALL}")
        return merger.stats

    save_locale_file(dest_file, merged)
    logger.info(f"Saved merged translations to {dest_file}")
    return merger.stats

def report(stats: SyncStats) -> None:
    """Print the success banner and counters."""
    print_box("✅ Translation sync completed successfully!", Fore.GREEN)
    print(f"{Fore.GREEN}Total keys synchronized: {stats.source_leaves}{Style.RESET_ALL}")
    print(f"{Fore.GREEN}Translated:          {stats.translated}{Style.RESET_ALL}")
    print(f"{Fore.GREEN}Already present:     {stats.kept}{Style.RESET_ALL}")
    if stats.failed:
        print(f"{Fore.YELLOW}Kept source text:    {stats.failed}{Style.RESET_ALL}")

def run(src_lang: str, dest_lang: str, src_path: str, dest_path: str, translator=None, retranslate_empty: bool = False, dry_run: bool = False) -> int:
    """Run a sync and turn the outcome into a process exit code."""
    try:
        stats = sync_translations(
            src_lang,
            dest_lang,
            src_path,
            dest_path,
            translator=translator,
            retranslate_empty=retranslate_empty,
            dry_run=dry_run,
        )
    except LocaleFileError as e:
        logger.error(str(e))
        print_box("❌ Error during translation sync", Fore.RED)
        return 1
    except KeyboardInterrupt:
        print_box("Translation sync interrupted, nothing was written", Fore.YELLOW)
        return 130

    if dry_run:
        print_box("Dry run finished, no files were modified", Fore.YELLOW)
        print(f"{Fore.YELLOW}Strings to translate: {stats.translated}/{stats.source_leaves}{Style.RESET_ALL}")
        return 0

    report(stats)
    return 0

def enable_debug() -> None:
    console_handler.setLevel(logging.DEBUG)
    logger.setLevel(logging.DEBUG)
    print(f"{Fore.CYAN}Debug logging enabled{Style.RESET_ALL}")

def main(argv=None):
    """Main entry point for the CLI tool."""
    parser = argparse.ArgumentParser(
        description="Gemini Locale Sync - Fill missing keys of a JSON locale file using the Gemini API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sync English strings into the Vietnamese file
  gemini-locale-sync en vi ./locales/en.json ./locales/vi.json

  # Use another model and show what would be translated
  gemini-locale-sync en fr ./locales/en.json ./locales/fr.json --model gemini-2.0-flash --dry-run

  # Also fill keys whose translation is an empty string
  gemini-locale-sync en de ./locales/en.json ./locales/de.json --retranslate-empty
"""
    )

    parser.add_argument("src_lang", help="Source language (e.g. en)")
    parser.add_argument("dest_lang", help="Destination language (e.g. vi)")
    parser.add_argument("src_path", help="Source locale JSON file")
    parser.add_argument("dest_path", help="Destination locale JSON file (created if missing)")

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"Gemini Locale Sync v{__version__}",
        help="Show the version number and exit"
    )

    parser.add_argument(
        "--api-key", "-k",
        type=str,
        help="Gemini API key (otherwise read from GOOGLE_API_KEY in .env)"
    )

    parser.add_argument(
        "--model", "-m",
        type=str,
        help=f"Gemini model name (otherwise GEMINI_MODEL or {DEFAULT_MODEL})"
    )

    parser.add_argument(
        "--temperature", "-t",
        type=float,
        default=DEFAULT_TEMPERATURE,
        help=f"Sampling temperature (default: {DEFAULT_TEMPERATURE})"
    )

    parser.add_argument(
        "--max-retries",
        type=int,
        default=MAX_RETRIES,
        help=f"Retries per string when the API is rate limited (default: {MAX_RETRIES})"
    )

    parser.add_argument(
        "--retranslate-empty",
        action="store_true",
        help="Treat empty strings in the destination file as missing"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Don't call the API or save the file; just report what would be translated"
    )

    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args(argv)

    if args.debug:
        enable_debug()

    print_box("Gemini Locale Sync", Fore.BLUE)

    translator = None
    if not args.dry_run:
        translator = create_translator(args.api_key, args.model, args.temperature, args.max_retries)

    sys.exit(run(
        args.src_lang,
        args.dest_lang,
        args.src_path,
        args.dest_path,
        translator=translator,
        retranslate_empty=args.retranslate_empty,
        dry_run=args.dry_run,
    ))

def main_en_vi(argv=None):
    """Entry point for the fixed English to Vietnamese sync of en.json into vi.json."""
    parser = argparse.ArgumentParser(
        description="Sync en.json into vi.json, translating missing keys from English to Vietnamese",
    )
    parser.add_argument(
        "--dir",
        type=str,
        default=".",
        help="Directory holding en.json and vi.json (default: current directory)"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )
    args = parser.parse_args(argv)

    if args.debug:
        enable_debug()

    locales_dir = resolve_path(args.dir)
    translator = create_translator(temperature=1.0)
    sys.exit(run(
        "English",
        "Vietnamese",
        str(locales_dir / "en.json"),
        str(locales_dir / "vi.json"),
        translator=translator,
    ))

if __name__ == "__main__":
    main()
