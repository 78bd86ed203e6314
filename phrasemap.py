"""
Phrase map – recurring phrase discovery for short inscriptions.

Lines are normalized, every window of up to PHRASE_WORD_MAX words is counted into
a nested word trie (the "phrase map"), and each node deep enough to be a phrase is
scored by frequency weighted by length. The ranked list can then be filtered
against ignore patterns and reduced so that only the best-scored member of an
overlapping phrase family survives.
"""
import itertools
import multiprocessing as mp
import re
from typing import Dict, Iterable, Iterator, List, NamedTuple, Sequence, Tuple

from tqdm import tqdm

# -----------------------------
# Constants & Regexes
# -----------------------------

# Longest word window tracked from each position of a line
PHRASE_WORD_MAX = 8

# Shortest window that counts as a phrase
PHRASE_WORD_MIN = 3

# Points per extra word beyond PHRASE_WORD_MIN
PHRASE_LENGTH_SCORE_MULTIPLIER = 2

# Phrases matching any of these are dropped from the top list
PHRASE_IGNORE_PATTERNS = [
   r"memory of \S+$",  # name phrases, eg. "in loving memory of dan"
]

TOP_PHRASE_LIMIT = 250

MULTISPACE_RE = re.compile(r"\s+")
STRIP_PUNCT_RE = re.compile(r"[.,;]")


class ScoredPhrase(NamedTuple):
   phrase: str
   score: int


# -----------------------------
# Phrase Trie
# -----------------------------

class PhraseNode:
   """One word of a phrase path; `count` is how many windows ended here."""

   __slots__ = ("count", "children")

   def __init__(self) -> None:
      self.count = 0
      self.children: Dict[str, "PhraseNode"] = {}

   def child(self, word: str) -> "PhraseNode":
      node = self.children.get(word)
      if node is None:
         node = self.children[word] = PhraseNode()
      return node

   def get(self, words: Sequence[str]) -> "PhraseNode | None":
      """Follows a word path from this node, or returns None if it was never seen."""
      node = self
      for word in words:
         node = node.children.get(word)
         if node is None:
            return None
      return node

   def iter_nodes(self) -> Iterator[Tuple[Tuple[str, ...], "PhraseNode"]]:
      """Yields (path, node) for every node below this one, depth first."""
      stack = [((word,), node) for word, node in self.children.items()]
      while stack:
         path, node = stack.pop()
         yield path, node
         stack.extend((path + (word,), sub) for word, sub in node.children.items())

   def node_count(self) -> int:
      return sum(1 for _ in self.iter_nodes())

   def __repr__(self) -> str:
      return f"PhraseNode(count={self.count}, children={len(self.children)})"


# -----------------------------
# Text Processing
# -----------------------------

def clean_line(line: str) -> str:
   """Normalises whitespace, drops `.,;` and lowercases a single inscription."""
   line = MULTISPACE_RE.sub(" ", line)
   line = STRIP_PUNCT_RE.sub("", line)
   return line.lower().strip()

def clean_inscriptions(lines: Iterable[str]) -> list[str]:
   return [clean_line(line) for line in lines]


# -----------------------------
# Phrase Map Building
# -----------------------------

def _validate_window(min_words: int, max_words: int) -> None:
   if min_words < 1:
      raise ValueError("min_words must be at least 1")
   if max_words < min_words:
      raise ValueError("max_words must be >= min_words")

def add_line_to_phrase_map(line: str, root: PhraseNode, max_words: int = PHRASE_WORD_MAX) -> None:
   """Counts every window of up to `max_words` words, anchored at each word of the line."""
   # An empty line still yields one empty word, which is counted like any other.
   words = line.split(" ")
   word_count = len(words)
   for i in range(word_count):
      node = root
      for j in range(i, min(i + max_words, word_count)):
         node = node.child(words[j])
         node.count += 1

def merge_phrase_maps(target: PhraseNode, source: PhraseNode) -> PhraseNode:
   """Adds the counts of `source` into `target` path by path and returns `target`."""
   stack = [(target, source)]
   while stack:
      into, other = stack.pop()
      for word, sub in other.children.items():
         node = into.child(word)
         node.count += sub.count
         stack.append((node, sub))
   return target

def _build_shard(shard: Tuple[List[str], int]) -> PhraseNode:
   lines, max_words = shard
   root = PhraseNode()
   for line in lines:
      add_line_to_phrase_map(line, root, max_words)
   return root

def _iter_shards(lines: List[str], size: int):
   it = iter(lines)
   while True:
      batch = list(itertools.islice(it, size))
      if not batch:
         break
      yield batch

def build_phrase_map(lines: Iterable[str], max_words: int = PHRASE_WORD_MAX,
                     workers: int = 1, progress: bool = False) -> PhraseNode:
   """Builds one phrase map for the whole corpus.

   With `workers` > 1 the lines are split into contiguous shards, each shard is
   counted in its own process and the shard maps are summed together. The result
   is identical to the single-process build.
   """
   if max_words < 1:
      raise ValueError("max_words must be at least 1")
   if workers < 1:
      raise ValueError("workers must be at least 1")

   lines = list(lines)
   if workers == 1 or len(lines) < 2:
      root = PhraseNode()
      for line in tqdm(lines, desc="Building phrase map", disable=not progress):
         add_line_to_phrase_map(line, root, max_words)
      return root

   shard_size = max(1, -(-len(lines) // workers))
   tasks = [(batch, max_words) for batch in _iter_shards(lines, shard_size)]
   root = PhraseNode()
   with mp.Pool(processes=min(workers, len(tasks))) as pool:
      with tqdm(total=len(tasks), desc="Merging phrase map shards", disable=not progress) as pbar:
         for shard_root in pool.imap_unordered(_build_shard, tasks):
            merge_phrase_maps(root, shard_root)
            pbar.update(1)
   return root


# -----------------------------
# Scoring
# -----------------------------

def phrase_score(count: int, depth: int, min_words: int = PHRASE_WORD_MIN,
                 length_multiplier: int = PHRASE_LENGTH_SCORE_MULTIPLIER) -> int:
   """Frequency weighted by how far the phrase runs past the minimum length."""
   depth_multiplier = ((depth + 1) - min_words) * length_multiplier
   return count * depth_multiplier

def iter_scored_phrases(root: PhraseNode, min_words: int = PHRASE_WORD_MIN,
                        max_words: int = PHRASE_WORD_MAX,
                        length_multiplier: int = PHRASE_LENGTH_SCORE_MULTIPLIER) -> Iterator[ScoredPhrase]:
   """Yields a ScoredPhrase for every repeated node within the phrase length band."""
   _validate_window(min_words, max_words)
   if length_multiplier <= 0:
      raise ValueError("length_multiplier must be positive")

   stack = [([word], node) for word, node in root.children.items()]
   while stack:
      words, node = stack.pop()
      depth = len(words)
      if min_words <= depth <= max_words and node.count > 1:
         score = phrase_score(node.count, depth, min_words, length_multiplier)
         yield ScoredPhrase(" ".join(words), score)
      for word, sub in node.children.items():
         stack.append((words + [word], sub))

def score_phrase_map(root: PhraseNode, min_words: int = PHRASE_WORD_MIN,
                     max_words: int = PHRASE_WORD_MAX,
                     length_multiplier: int = PHRASE_LENGTH_SCORE_MULTIPLIER) -> list[ScoredPhrase]:
   return list(iter_scored_phrases(root, min_words, max_words, length_multiplier))

def sort_scored_phrases(phrases: List[ScoredPhrase]) -> None:
   """Sorts in place, highest score first."""
   phrases.sort(key=lambda p: p.score, reverse=True)


# -----------------------------
# Filtering & De-duplication
# -----------------------------

def compile_ignore_patterns(patterns: Iterable[str | re.Pattern] | None = None) -> list[re.Pattern]:
   if patterns is None:
      patterns = PHRASE_IGNORE_PATTERNS
   return [p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns]

def filter_scored_phrases(phrases: Iterable[ScoredPhrase],
                          patterns: Iterable[str | re.Pattern] | None = None) -> list[ScoredPhrase]:
   """Drops phrases matching any ignore pattern. Scores are never consulted."""
   compiled = compile_ignore_patterns(patterns)
   return [p for p in phrases if not any(rx.search(p.phrase) for rx in compiled)]

def _token_windows(words: Sequence[str]) -> Iterator[Tuple[str, ...]]:
   for i in range(len(words)):
      for j in range(i + 1, len(words) + 1):
         yield tuple(words[i:j])

def dedupe_scored_phrases(phrases: Iterable[ScoredPhrase], token_aware: bool = False) -> list[ScoredPhrase]:
   """Keeps a phrase only if no earlier kept phrase already contains it.

   The input should be sorted so that earlier means higher scored. By default
   containment is a plain substring test, so "ill miss" is dropped under
   "we will miss you" even though it crosses a word boundary. With `token_aware`
   a phrase is only dropped when its words appear as a contiguous run of words
   in a kept phrase.
   """
   deduped = []
   if token_aware:
      seen_windows = set()
      for item in phrases:
         words = tuple(item.phrase.split(" "))
         if words in seen_windows:
            continue
         deduped.append(item)
         seen_windows.update(_token_windows(words))
      return deduped

   kept = []
   for item in phrases:
      if any(item.phrase in other for other in kept):
         continue
      deduped.append(item)
      kept.append(item.phrase)
   return deduped


# -----------------------------
# Pipeline
# -----------------------------

def rank_phrases(lines: Iterable[str], min_words: int = PHRASE_WORD_MIN,
                 max_words: int = PHRASE_WORD_MAX,
                 length_multiplier: int = PHRASE_LENGTH_SCORE_MULTIPLIER,
                 workers: int = 1, progress: bool = False) -> list[ScoredPhrase]:
   """Cleans raw lines and returns every scored phrase, highest score first."""
   _validate_window(min_words, max_words)
   phrase_map = build_phrase_map(clean_inscriptions(lines), max_words, workers=workers, progress=progress)
   scored = score_phrase_map(phrase_map, min_words, max_words, length_multiplier)
   sort_scored_phrases(scored)
   return scored

def top_phrases(ranked: Iterable[ScoredPhrase], patterns: Iterable[str | re.Pattern] | None = None,
                limit: int = TOP_PHRASE_LIMIT, token_aware: bool = False) -> list[ScoredPhrase]:
   """Filters and de-duplicates a ranked list, then keeps the first `limit` entries."""
   if limit < 0:
      raise ValueError("limit must not be negative")
   filtered = filter_scored_phrases(ranked, patterns)
   return dedupe_scored_phrases(filtered, token_aware=token_aware)[:limit]
