import pytest


@pytest.fixture
def bench_lines():
    return [
        "In loving memory of Dan.",
        "In loving memory of Sue",
        "in  loving memory of   Bob;",
        "Forever in our hearts",
        "forever in our hearts, always",
    ]
