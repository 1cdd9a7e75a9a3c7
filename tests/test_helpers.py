import json

import pytest

from arbor.helpers import PaginateOptions, paginate
from arbor.metrics import Metrics


def test_paginate_splits_results():
    pages = paginate(range(5), PaginateOptions(size=2))
    assert [page["results"] for page in pages] == [[0, 1], [2, 3], [4]]
    assert [page["url"] for page in pages] == ["/", "/page/2/", "/page/3/"]

    middle = pages[1]["pagination"]
    assert middle == {
        "page": 2,
        "totalPages": 3,
        "totalResults": 5,
        "previous": "/",
        "next": "/page/3/",
    }
    assert pages[0]["pagination"]["previous"] is None
    assert pages[2]["pagination"]["next"] is None


def test_paginate_options():
    pages = paginate([], {"size": 3, "url": lambda n: f"/archive/{n}/"})
    assert len(pages) == 1
    assert pages[0]["url"] == "/archive/1/"
    assert pages[0]["results"] == []

    assert len(paginate(range(25))) == 3
    with pytest.raises(ValueError):
        paginate([1], PaginateOptions(size=0))


def test_metrics_summary_and_save(tmp_path):
    metrics = Metrics()
    first = metrics.start("Render", {"page": "/a.md"})
    first.stop()
    first.stop()
    second = metrics.start("Render")
    second.stop()
    metrics.start("Unfinished")

    summary = metrics.summary()
    assert list(summary) == ["Render"]
    assert summary["Render"] == pytest.approx(first.elapsed_ms + second.elapsed_ms)

    output = tmp_path / "metrics" / "build.json"
    metrics.save(output)
    rows = json.loads(output.read_text(encoding="utf-8"))
    assert [row["name"] for row in rows] == ["Render", "Render"]
    assert rows[0]["details"] == {"page": "/a.md"}

    metrics.print()
    metrics.clear()
    assert metrics.entries == []
