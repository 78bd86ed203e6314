"""
Refine the all.csv output of benchphrase.py into a new top list
"""
import argparse
import sys
from typing import Iterable, Optional, Union

import pandas as pd

import phrasemap
from phrasemap import ScoredPhrase


def _load_hits(hits_paths: Union[str, Iterable[str]]) -> set:
    """
    Load one or many 'hits' files of phrases already used elsewhere. Lines are
    cleaned the same way inscriptions are, so a hit may be pasted straight from a
    bench ("In Loving Memory."). Blank lines and '#' comments are skipped.
    """
    paths = [hits_paths] if isinstance(hits_paths, (str, bytes)) else list(hits_paths)

    hits = set()
    for path in paths:
        with open(path, 'r', encoding='utf-8') as f:
            cleaned = [phrasemap.clean_line(line) for line in f if not line.lstrip().startswith("#")]
        found = {phrase for phrase in cleaned if phrase}
        print(f"[info] {len(found)} hit(s) in '{path}'", file=sys.stderr)
        hits |= found
    return hits


def refine_scored_csv(csv_file_path,
                      output_file_path,
                      ignore_patterns: Optional[Iterable[str]] = None,
                      hits_file_paths: Optional[Union[str, Iterable[str]]] = None,
                      limit: int = phrasemap.TOP_PHRASE_LIMIT,
                      token_aware: bool = False) -> pd.DataFrame:
    """
    Reads a scored phrase CSV, re-applies filtering and de-duplication, and writes
    the first `limit` surviving rows.

    Parameters
    ----------
    csv_file_path : str
        Input CSV path with `phrase` and `score` columns (eg. output/all.csv).
    output_file_path : str
        Where to write the refined CSV (same columns).
    ignore_patterns : Iterable[str] | None
        Regexes of phrases to drop. Defaults to phrasemap.PHRASE_IGNORE_PATTERNS.
    hits_file_paths : str | Iterable[str] | None
        One or many files of phrases to exclude, cleaned like inscriptions.
    limit : int
        Number of rows to keep after de-duplication.
    token_aware : bool
        De-duplicate on whole words instead of substrings.
    """
    try:
        print(f"[info] Reading CSV file from '{csv_file_path}'...", file=sys.stderr)
        df = pd.read_csv(csv_file_path, keep_default_na=False, dtype={'phrase': str})
    except FileNotFoundError as e:
        print(f"Error: The file {e.filename} was not found.", file=sys.stderr)
        raise

    df = df.sort_values('score', ascending=False, kind='stable')
    phrases = [ScoredPhrase(phrase, int(score)) for phrase, score in zip(df['phrase'], df['score'])]
    print(f"[info] Loaded {len(phrases)} phrases. Applying filters...", file=sys.stderr)

    phrases = phrasemap.filter_scored_phrases(phrases, ignore_patterns)

    # Exclude prev hits or blacklist
    if hits_file_paths:
        hits = _load_hits(hits_file_paths)
        before = len(phrases)
        phrases = [p for p in phrases if p.phrase not in hits]
        print(f"[info] Excluded {before - len(phrases)} phrase(s) present in hits file(s).", file=sys.stderr)

    phrases = phrasemap.dedupe_scored_phrases(phrases, token_aware=token_aware)[:limit]

    refined = pd.DataFrame(phrases, columns=['phrase', 'score'])
    refined.to_csv(output_file_path, index=False)
    print(f"[info] Refining complete. {len(refined)} phrases written to '{output_file_path}'.", file=sys.stderr)
    return refined


def main(argv=None):
    ap = argparse.ArgumentParser(description="Refine a scored phrase CSV into a top list.")
    ap.add_argument("csv_file", help="Scored phrase CSV, eg. output/all.csv")
    ap.add_argument("output_file", help="Where to write the refined CSV")
    ap.add_argument("--ignore", action="append", help="Regex of phrases to drop (repeatable, replaces defaults)")
    ap.add_argument("--hits", action="append", default=[], help="File of phrases to exclude, one per line (repeatable)")
    ap.add_argument("--top-n", type=int, default=phrasemap.TOP_PHRASE_LIMIT)
    ap.add_argument("--token-dedupe", action="store_true")
    args = ap.parse_args(argv)

    try:
        refine_scored_csv(args.csv_file, args.output_file,
                          ignore_patterns=args.ignore,
                          hits_file_paths=args.hits,
                          limit=args.top_n,
                          token_aware=args.token_dedupe)
    except (FileNotFoundError, KeyError) as e:
        sys.exit(f"ERROR: {e}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
