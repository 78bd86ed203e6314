"""
Benchphrase – most common phrases on memorial benches.

Loads bench inscriptions from the OpenBenches API (or a local JSON cache of a
previous fetch), builds a phrase map from them and writes two CSV tables: every
scored phrase, and a filtered, de-duplicated top list.

-- Dependencies --
- Required: requests, ftfy, tqdm
"""
import argparse
import csv
import json
import pathlib
import re
import sys
from typing import Any, Dict, List

import ftfy
import requests

import phrasemap
from phrasemap import ScoredPhrase

# -----------------------------
# Constants
# -----------------------------
API_URL = "https://openbenches.org/api/v1.0/data.json/?truncated=false"
DEFAULT_CACHE_FILE = "cache/inscriptions.json"
DEFAULT_OUTPUT_DIR = "output"
REQUEST_TIMEOUT = 60


# -----------------------------
# Corpus Loading
# -----------------------------

def strip_api_prefix(body: str) -> str:
   """The API wraps its JSON in a short JavaScript assignment; keep only the object."""
   start = body.find("{")
   return body[start:] if start > 0 else body

def extract_inscriptions(api_data: Dict[str, Any]) -> list[str]:
   """Pulls the inscription text out of each GeoJSON feature; missing text becomes ''."""
   inscriptions = []
   for feature in api_data.get("features") or []:
      properties = (feature or {}).get("properties") or {}
      inscriptions.append(properties.get("popupContent") or "")
   return inscriptions

def fetch_inscriptions(api_url: str = API_URL, timeout: int = REQUEST_TIMEOUT) -> list[str]:
   print(f"[info] Fetching inscriptions from {api_url}", file=sys.stderr)
   response = requests.get(api_url, timeout=timeout)
   response.raise_for_status()
   return extract_inscriptions(json.loads(strip_api_prefix(response.text)))

def load_inscriptions(cache_file: str | pathlib.Path = DEFAULT_CACHE_FILE, api_url: str = API_URL,
                      refresh: bool = False, timeout: int = REQUEST_TIMEOUT) -> list[str]:
   """Loads inscriptions from the local cache if present, otherwise from the API."""
   cache_path = pathlib.Path(cache_file)
   if cache_path.exists() and not refresh:
      print(f"[info] Loading cached inscriptions from {cache_path}", file=sys.stderr)
      with open(cache_path, "r", encoding="utf-8") as f:
         inscriptions = json.load(f)
   else:
      inscriptions = fetch_inscriptions(api_url, timeout)
      cache_path.parent.mkdir(parents=True, exist_ok=True)
      with open(cache_path, "w", encoding="utf-8") as f:
         json.dump(inscriptions, f)
      print(f"[info] Cached {len(inscriptions)} inscriptions to {cache_path}", file=sys.stderr)

   # Repairs mojibake and HTML entities left in the source text.
   return [ftfy.fix_text(text) if isinstance(text, str) else "" for text in inscriptions]


# -----------------------------
# Output
# -----------------------------

def output_scored_phrase_list(phrases: List[ScoredPhrase], name: str,
                              output_dir: str | pathlib.Path = DEFAULT_OUTPUT_DIR) -> pathlib.Path:
   """Writes a scored phrase list to `<output_dir>/<name>.csv`."""
   out_path = pathlib.Path(output_dir) / f"{name}.csv"
   out_path.parent.mkdir(parents=True, exist_ok=True)
   with open(out_path, "w", newline="", encoding="utf-8") as f:
      writer = csv.writer(f)
      writer.writerow(["phrase", "score"])
      writer.writerows(phrases)
   print(f"[info] Wrote {len(phrases)} phrases to {out_path}", file=sys.stderr)
   return out_path

def write_run_meta(output_dir: str | pathlib.Path, stats: Dict[str, int], args: argparse.Namespace) -> pathlib.Path:
   meta_path = pathlib.Path(output_dir) / "meta.json"
   meta_path.parent.mkdir(parents=True, exist_ok=True)
   with open(meta_path, "w", encoding="utf-8") as f:
      json.dump({**stats, "args": vars(args)}, f, indent=2, default=str)
   return meta_path


# -----------------------------
# Main Script Logic Functions
# -----------------------------

def setup_args(argv: list[str] | None = None) -> argparse.Namespace:
   """Sets up and parses command-line arguments."""
   ap = argparse.ArgumentParser(description="Find the most common phrases on memorial benches.")

   # Input
   ap.add_argument("--cache-file", default=DEFAULT_CACHE_FILE, help="JSON cache of fetched inscriptions")
   ap.add_argument("--refresh", action="store_true", help="Ignore the cache and fetch from the API again")
   ap.add_argument("--api-url", default=API_URL, help="Inscription data endpoint")
   ap.add_argument("--timeout", type=int, default=REQUEST_TIMEOUT, help="HTTP timeout in seconds")

   # Phrase rules
   ap.add_argument("--min-words", type=int, default=phrasemap.PHRASE_WORD_MIN, help="Min words in a phrase")
   ap.add_argument("--max-words", type=int, default=phrasemap.PHRASE_WORD_MAX, help="Max words in a phrase")
   ap.add_argument("--length-multiplier", type=int, default=phrasemap.PHRASE_LENGTH_SCORE_MULTIPLIER,
                   help="Score points per word beyond --min-words")
   ap.add_argument("--workers", type=int, default=1, help="Processes used to build the phrase map")

   # Filtering & output
   ap.add_argument("--ignore", action="append", default=[], help="Regex of phrases to drop from the top list (repeatable, replaces the built-in patterns)")
   ap.add_argument("--no-default-ignores", action="store_true", help="Do not apply the built-in ignore patterns")
   ap.add_argument("--token-dedupe", action="store_true", help="De-duplicate on whole words instead of substrings")
   ap.add_argument("--top-n", type=int, default=phrasemap.TOP_PHRASE_LIMIT, help="Size of the top list")
   ap.add_argument("--output-dir", default=DEFAULT_OUTPUT_DIR, help="Directory for CSV output")
   ap.add_argument("--no-progress", action="store_true", help="Hide progress bars")

   return ap.parse_args(argv)

def validate_args(args: argparse.Namespace) -> None:
   """Rejects phrase settings the pipeline cannot run with."""
   if args.min_words < 1: sys.exit("ERROR: --min-words must be at least 1")
   if args.max_words < args.min_words: sys.exit("ERROR: --max-words cannot be less than --min-words")
   if args.length_multiplier <= 0: sys.exit("ERROR: --length-multiplier must be positive")
   if args.workers < 1: sys.exit("ERROR: --workers must be at least 1")
   if args.top_n < 0: sys.exit("ERROR: --top-n cannot be negative")

def load_ignore_patterns(args: argparse.Namespace) -> list[re.Pattern]:
   """Compiles the --ignore patterns, or the built-in ones when none are given."""
   if args.ignore:
      patterns = args.ignore
   elif args.no_default_ignores:
      patterns = []
   else:
      patterns = phrasemap.PHRASE_IGNORE_PATTERNS
   try:
      return phrasemap.compile_ignore_patterns(patterns)
   except re.error as e:
      sys.exit(f"ERROR: Invalid --ignore pattern: {e}")

def run(args: argparse.Namespace) -> Dict[str, int]:
   """Runs the full pipeline and writes the `all` and `top-N` tables."""
   validate_args(args)
   patterns = load_ignore_patterns(args)

   try:
      inscriptions = load_inscriptions(args.cache_file, args.api_url, args.refresh, args.timeout)
   except requests.RequestException as e:
      sys.exit(f"ERROR: Could not fetch inscriptions: {e}")
   except (json.JSONDecodeError, OSError) as e:
      sys.exit(f"ERROR: Could not read inscriptions: {e}")

   score_list = phrasemap.rank_phrases(inscriptions, args.min_words, args.max_words, args.length_multiplier,
                                       workers=args.workers, progress=not args.no_progress)
   output_scored_phrase_list(score_list, "all", args.output_dir)

   top = phrasemap.top_phrases(score_list, patterns, args.top_n, token_aware=args.token_dedupe)
   output_scored_phrase_list(top, f"top-{args.top_n}", args.output_dir)

   stats = {
      "lines_processed": len(inscriptions),
      "phrases_scored": len(score_list),
      "phrases_top": len(top),
   }
   write_run_meta(args.output_dir, stats, args)
   return stats

def main(argv: list[str] | None = None) -> int:
   """Main function to orchestrate the phrase extraction pipeline."""
   args = setup_args(argv)
   stats = run(args)
   print(f"[info] Finished. {stats['phrases_scored']} phrases scored, "
         f"{stats['phrases_top']} in the top list.", file=sys.stderr)
   return 0

def cli() -> None:
   try:
      sys.exit(main())
   except KeyboardInterrupt:
      print("\nInterrupted by user.", file=sys.stderr)
      sys.exit(130)

if __name__ == "__main__":
   cli()
