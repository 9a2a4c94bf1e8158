import json

import pytest

from components.seed_loader import load_seeds, seeds_summary


def _write_json(path, data):
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


def test_load_json_array(tmp_path):
    path = _write_json(tmp_path / "car_urls.json", [
        {
            "car_name": " BMW 320d ",
            "price": 19990,
            "maker": "BMW",
            "image": None,
            "detail_url": "https://suchen.mobile.de/details.html?id=1&lang=de",
            "badge": "Top",
        },
        {"car_name": "No URL", "detail_url": ""},
        {"car_name": "Golf", "maker": "VW", "detail_url": "https://suchen.mobile.de/details.html?id=2"},
    ])

    seeds = load_seeds(path)

    assert [s.car_name for s in seeds] == ["BMW 320d", "Golf"]
    first = seeds[0]
    assert first.price == "19990"
    assert first.image == ""
    assert first.extra == {"badge": "Top"}
    # the raw URL is kept; normalization happens when the task navigates
    assert first.detail_url.endswith("&lang=de")


def test_dedupe_on_normalized_url_keeps_first(tmp_path):
    path = _write_json(tmp_path / "cars.json", [
        {"car_name": "A", "detail_url": "https://m.de/d.html?id=1&lang=de"},
        {"car_name": "B", "detail_url": "https://m.de/d.html?id=1&lang=en"},
        {"car_name": "C", "detail_url": "https://m.de/d.html?id=2"},
    ])
    assert [s.car_name for s in load_seeds(path)] == ["A", "C"]
    assert [s.car_name for s in load_seeds(path, dedupe=False)] == ["A", "B", "C"]


def test_limit_applies_after_dedupe(tmp_path):
    path = _write_json(tmp_path / "cars.json", [
        {"car_name": "A", "detail_url": "https://m.de/d.html?id=1"},
        {"car_name": "A2", "detail_url": "https://m.de/d.html?id=1"},
        {"car_name": "B", "detail_url": "https://m.de/d.html?id=2"},
        {"car_name": "C", "detail_url": "https://m.de/d.html?id=3"},
    ])
    assert [s.car_name for s in load_seeds(path, limit=2)] == ["A", "B"]


def test_load_csv(tmp_path):
    path = tmp_path / "seeds.csv"
    path.write_text(
        "car_name,price,maker,image,detail_url\n"
        '"Audi A4","25.000 €",Audi,https://img/1.jpg,https://m.de/d.html?id=9\n',
        encoding="utf-8",
    )
    seeds = load_seeds(path)
    assert len(seeds) == 1
    assert seeds[0].maker == "Audi"
    assert seeds[0].price == "25.000 €"


def test_unknown_suffix_rejected(tmp_path):
    path = tmp_path / "seeds.txt"
    path.write_text("x")
    with pytest.raises(ValueError):
        load_seeds(path)


def test_json_must_be_array_of_objects(tmp_path):
    path = _write_json(tmp_path / "bad.json", "just a string")
    with pytest.raises(ValueError):
        load_seeds(path)

    wrapped = _write_json(tmp_path / "wrapped.json", {"cars": [{"detail_url": "https://m.de/d.html?id=1"}, 5]})
    assert len(load_seeds(wrapped)) == 1


def test_seeds_summary(tmp_path):
    path = _write_json(tmp_path / "cars.json", [
        {"maker": "VW", "detail_url": "https://m.de/d.html?id=1"},
        {"maker": "VW", "detail_url": "https://m.de/d.html?id=2"},
        {"detail_url": "https://m.de/d.html?id=3"},
    ])
    assert seeds_summary(load_seeds(path)) == {"VW": 2, "unknown": 1}
