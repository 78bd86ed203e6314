"""Tests for refining an existing scored phrase CSV."""

import pandas as pd
import pytest

import cleanup
from benchphrase import output_scored_phrase_list
from phrasemap import ScoredPhrase, rank_phrases, top_phrases


@pytest.fixture
def all_csv(tmp_path):
    phrases = [
        ScoredPhrase("in loving memory of dan", 16),
        ScoredPhrase("in loving memory of", 12),
        ScoredPhrase("forever in our hearts", 8),
        ScoredPhrase("loving memory of", 6),
        ScoredPhrase("sit and rest awhile", 6),
        ScoredPhrase("in our hearts", 4),
        ScoredPhrase("null and void", 4),
    ]
    return output_scored_phrase_list(phrases, "all", tmp_path)


def test_refine_filters_and_dedupes(tmp_path, all_csv):
    out_path = tmp_path / "refined.csv"
    refined = cleanup.refine_scored_csv(all_csv, out_path)

    assert list(refined["phrase"]) == [
        "in loving memory of",
        "forever in our hearts",
        "sit and rest awhile",
        "null and void",
    ]
    assert list(refined["score"]) == [12, 8, 6, 4]
    assert pd.read_csv(out_path, keep_default_na=False).equals(refined)


def test_refine_excludes_hits_and_limits(tmp_path, all_csv):
    hits = tmp_path / "hits.txt"
    hits.write_text("# already used\n\nforever in our hearts\n", encoding="utf-8")

    refined = cleanup.refine_scored_csv(all_csv, tmp_path / "refined.csv",
                                        hits_file_paths=[str(hits)], limit=3)

    assert list(refined["phrase"]) == ["in loving memory of", "sit and rest awhile", "in our hearts"]


def test_refine_with_custom_patterns(tmp_path, all_csv):
    refined = cleanup.refine_scored_csv(all_csv, tmp_path / "refined.csv", ignore_patterns=[r"^in "])
    assert list(refined["phrase"])[:2] == ["forever in our hearts", "loving memory of"]


def test_load_hits_accepts_single_path(tmp_path):
    hits = tmp_path / "hits.txt"
    hits.write_text("  sit and rest  \n#comment\n", encoding="utf-8")
    assert cleanup._load_hits(str(hits)) == {"sit and rest"}


def test_load_hits_cleans_pasted_inscriptions(tmp_path):
    first = tmp_path / "first.txt"
    second = tmp_path / "second.txt"
    first.write_text("In  Loving Memory.\n   # old\n\n", encoding="utf-8")
    second.write_text("Forever, in our hearts;\n", encoding="utf-8")
    assert cleanup._load_hits([str(first), str(second)]) == {"in loving memory", "forever in our hearts"}


def test_refine_keeps_phrases_with_empty_words(tmp_path):
    # "x . b c d" cleans to "x  b c d", so one window starts on an empty word
    ranked = rank_phrases(["x . b c d", "y . b c d"])
    assert ranked[0] == ScoredPhrase(" b c d", 8)
    all_path = output_scored_phrase_list(ranked, "all", tmp_path)

    refined = cleanup.refine_scored_csv(all_path, tmp_path / "refined.csv")

    assert list(refined["phrase"]) == [p.phrase for p in top_phrases(ranked)] == [" b c d"]
    assert list(pd.read_csv(tmp_path / "refined.csv", keep_default_na=False)["phrase"]) == [" b c d"]


def test_refine_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        cleanup.refine_scored_csv(tmp_path / "missing.csv", tmp_path / "out.csv")


def test_main(tmp_path, all_csv):
    out_path = tmp_path / "top.csv"
    assert cleanup.main([str(all_csv), str(out_path), "--top-n", "1"]) == 0
    assert list(pd.read_csv(out_path)["phrase"]) == ["in loving memory of"]
