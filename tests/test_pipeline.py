from pathlib import Path

import pytest

from comicpdf import convert
from comicpdf.testing import make_image_bytes
from comicpdf.types_ import Archive, Converted, Failed
from comicpdf.worker import convert_batch, convert_one


def test_issue_scenario(tmp_path: Path, cfg, make_cbz, page_widths):
    src = make_cbz(tmp_path, "issue-01.cbz", ["002.jpg", "003.jpg", "001.jpg"])
    outcome = convert_one(src, cfg)
    assert isinstance(outcome, Converted)
    assert outcome.output_path == cfg.output_dir / "issue-01.pdf"
    assert outcome.page_count == 3
    # make_cbz gives entry i a width of 10 * (i + 1): 002 -> 10, 003 -> 20, 001 -> 30
    assert page_widths(outcome.output_path) == [30, 10, 20]


def test_padded_names_give_numeric_page_order(tmp_path: Path, cfg, make_cbz, page_widths):
    names = [f"{n:03d}.jpg" for n in (7, 3, 11, 1, 5)]
    widths = {n: 10 * (i + 1) for i, n in enumerate(names)}
    src = make_cbz(tmp_path, "padded.cbz", names)
    out = convert_one(src, cfg).output_path
    assert page_widths(out) == [widths[n] for n in sorted(names, key=lambda s: int(s[:3]))]


def test_page_count_matches_entry_count(tmp_path: Path, cfg, make_cbz, page_widths):
    names = [f"p{i:02d}.jpg" for i in range(12)]
    outcome = convert_one(make_cbz(tmp_path, "twelve.cbz", names), cfg)
    assert outcome.page_count == 12
    assert len(page_widths(outcome.output_path)) == 12


def test_natural_ordering_fixes_unpadded_names(tmp_path: Path, cfg, make_cbz, page_widths):
    src = make_cbz(tmp_path, "unpadded.cbz", ["1.jpg", "2.jpg", "10.jpg"])
    lex = convert_one(src, cfg)
    assert page_widths(lex.output_path) == [10, 30, 20]

    cfg.ordering = "natural"
    nat = convert_one(src, cfg)
    assert page_widths(nat.output_path) == [10, 20, 30]


def test_success_removes_scratch(tmp_path: Path, cfg, make_cbz):
    outcome = convert_one(make_cbz(tmp_path, "clean.cbz"), cfg)
    assert outcome.scratch_removed
    assert list(cfg.scratch_root.iterdir()) == []


def test_running_twice_is_idempotent(tmp_path: Path, cfg, make_cbz, page_widths):
    src = make_cbz(tmp_path, "twice.cbz")
    first = convert_one(src, cfg)
    second = convert_one(src, cfg)
    assert first.output_path == second.output_path
    assert len(page_widths(second.output_path)) == 3
    assert list(cfg.scratch_root.iterdir()) == []
    assert [p.name for p in cfg.output_dir.iterdir()] == ["twice.pdf"]


def test_running_twice_with_name_policy(tmp_path: Path, cfg, make_cbz):
    cfg.scratch_naming = "name"
    src = make_cbz(tmp_path, "twice.cbz")
    assert convert_one(src, cfg).ok
    assert convert_one(src, cfg).ok
    assert list(cfg.scratch_root.iterdir()) == []


def test_empty_archive_fails_without_output(tmp_path: Path, cfg, make_cbz):
    outcome = convert_one(make_cbz(tmp_path, "empty.cbz", {}), cfg)
    assert isinstance(outcome, Failed)
    assert outcome.stage == "order"
    assert outcome.archive_name == "empty"
    assert not (cfg.output_dir / "empty.pdf").exists()


def test_non_image_entry_fails_whole_archive(tmp_path: Path, cfg, make_cbz):
    entries = {
        "001.jpg": make_image_bytes(),
        "002.jpg": make_image_bytes(),
        "003.txt": b"credits",
    }
    outcome = convert_one(make_cbz(tmp_path, "mixed.cbz", entries), cfg)
    assert isinstance(outcome, Failed)
    assert outcome.stage == "assemble"
    assert "003.txt" in outcome.reason
    assert not (cfg.output_dir / "mixed.pdf").exists()


def test_exclude_skips_comicinfo(tmp_path: Path, cfg, make_cbz):
    entries = {
        "ComicInfo.xml": b"<ComicInfo></ComicInfo>",
        "001.jpg": make_image_bytes(),
    }
    src = make_cbz(tmp_path, "meta.cbz", entries)
    assert isinstance(convert_one(src, cfg), Failed)

    cfg.exclude = ("ComicInfo.xml",)
    outcome = convert_one(src, cfg)
    assert isinstance(outcome, Converted)
    assert outcome.page_count == 1


def test_write_failure_keeps_scratch(tmp_path: Path, cfg, make_cbz):
    cfg.output_dir = tmp_path / "does-not-exist"
    outcome = convert_one(make_cbz(tmp_path, "keep.cbz"), cfg)
    assert isinstance(outcome, Failed)
    assert outcome.stage == "write"
    left = list(cfg.scratch_root.iterdir())
    assert len(left) == 1
    assert sorted(p.name for p in left[0].iterdir()) == ["001.jpg", "002.jpg", "003.jpg"]


def test_unexpected_error_is_contained(tmp_path: Path, cfg, make_cbz, monkeypatch):
    import comicpdf.worker as worker

    def boom(*args, **kwargs):
        raise KeyError("bug")

    monkeypatch.setattr(worker, "order_pages", boom)
    outcome = convert_one(make_cbz(tmp_path, "bug.cbz"), cfg)
    assert isinstance(outcome, Failed)
    assert outcome.stage == "internal"


def _three_with_corrupt_middle(tmp_path: Path, make_cbz):
    first = make_cbz(tmp_path, "a.cbz")
    middle = tmp_path / "b.cbz"
    middle.write_bytes(b"garbage")
    last = make_cbz(tmp_path, "c.cbz")
    return [first, middle, last]


@pytest.mark.parametrize("nb_worker", [1, 3])
def test_batch_isolates_failures_and_keeps_order(tmp_path: Path, cfg, make_cbz, nb_worker):
    cfg.nb_worker = nb_worker
    result = convert_batch(_three_with_corrupt_middle(tmp_path, make_cbz), cfg)
    assert len(result.outcomes) == 3
    assert [o.archive_name for o in result.outcomes] == ["a", "b", "c"]
    assert [o.ok for o in result.outcomes] == [True, False, True]
    assert result.outcomes[1].stage == "extract"
    assert result.outputs == [cfg.output_dir / "a.pdf", cfg.output_dir / "c.pdf"]
    assert all(p.exists() for p in result.outputs)
    assert [f.archive_name for f in result.failures] == ["b"]
    assert not result.all_failed


def test_batch_all_failed_is_not_an_error(tmp_path: Path, cfg):
    bad = []
    for name in ("x.cbz", "y.cbz"):
        p = tmp_path / name
        p.write_bytes(b"nope")
        bad.append(p)
    result = convert_batch(bad, cfg)
    assert result.all_failed
    assert result.outputs == []
    assert len(result.failures) == 2


def test_batch_same_base_name_runs_sequentially(tmp_path: Path, cfg, make_cbz, caplog):
    (tmp_path / "one").mkdir()
    (tmp_path / "two").mkdir()
    a = make_cbz(tmp_path / "one", "dup.cbz", ["001.jpg"])
    b = make_cbz(tmp_path / "two", "dup.cbz", ["001.jpg", "002.jpg"])
    cfg.nb_worker = 2
    result = convert_batch([a, b], cfg)
    assert "share a base name" in caplog.text
    assert [o.page_count for o in result.outcomes] == [1, 2]
    # the later archive replaces the earlier output
    assert result.outputs == [cfg.output_dir / "dup.pdf", cfg.output_dir / "dup.pdf"]


def test_batch_name_policy_disables_parallelism(tmp_path: Path, cfg, make_cbz, caplog):
    cfg.nb_worker = 2
    cfg.scratch_naming = "name"
    result = convert_batch([make_cbz(tmp_path, "a.cbz"), make_cbz(tmp_path, "b.cbz")], cfg)
    assert "running sequentially" in caplog.text
    assert all(o.ok for o in result.outcomes)


def test_convert_helper(tmp_path: Path, make_cbz):
    src = make_cbz(tmp_path, "api.cbz")
    result = convert([src], output_dir=tmp_path, scratch_root=tmp_path / "s", ordering="natural")
    assert result.outputs == [tmp_path / "api.pdf"]
    assert isinstance(result.find("api"), Converted)
    assert result.find("nope") is None


def test_convert_helper_rejects_bad_options(tmp_path: Path):
    with pytest.raises(ValueError):
        convert([], output_dir=tmp_path, ordering="shuffle")


def test_archive_objects_accepted(tmp_path: Path, cfg, make_cbz):
    result = convert_batch([Archive(make_cbz(tmp_path, "obj.cbz"))], cfg)
    assert result.outputs == [cfg.output_dir / "obj.pdf"]
