import re
import pytest
import lot_scroll
from lot_scroll import DiscoveryTimeout, ReloadFailed, RowNotFound, discover_rows, ensure_row, find_by_role, make_probe, reload_page
from fakes import FakeBrowser, FakeSite, FakeRows
from playwright.sync_api import Error as PWError


class Source:
    """Simulated lazy table: each probe reveals ``step`` more of ``total`` rows."""

    def __init__(self, total, step=10, initial=None):
        self.total = total
        self.step = step
        self.rendered = min(step, total) if initial is None else initial
        self.probes = 0

    def count(self):
        return self.rendered

    def probe(self):
        self.probes += 1
        self.rendered = min(self.total, self.rendered + self.step)


@pytest.mark.parametrize("target,total", [(30, 100), (30, 30), (5, 12), (1, 1)])
def test_discovery_reaches_target(target, total):
    src = Source(total, step=7)
    found = discover_rows(src.count, src.probe, target_count=target)
    assert found >= target
    assert min(target, found) == min(target, total)


@pytest.mark.parametrize("total", [1, 12, 29])
def test_discovery_stops_when_source_stagnates(total):
    src = Source(total, step=5)
    found = discover_rows(src.count, src.probe, target_count=30, stagnation_threshold=3)
    assert found == total


def test_zero_rows_terminate_through_stagnation():
    src = Source(0)
    assert discover_rows(src.count, src.probe, target_count=30, stagnation_threshold=3) == 0
    assert src.probes == 3


@pytest.mark.parametrize("threshold", [1, 2, 5])
def test_stagnation_threshold_bounds_probe_count(threshold):
    src = Source(4, step=10)
    discover_rows(src.count, src.probe, target_count=30, stagnation_threshold=threshold)
    assert src.probes == threshold


def test_discovery_without_target_or_stagnation_times_out(monkeypatch):
    clock = [1000.0]
    monkeypatch.setattr(lot_scroll.time, "time", lambda: clock[0])
    rendered = [0]

    def probe():
        rendered[0] += 1
        clock[0] += 1.0

    with pytest.raises(DiscoveryTimeout):
        discover_rows(lambda: rendered[0], probe, target_count=10**6, timeout_ms=5000)
    assert rendered[0] == 5


def test_count_query_fault_propagates():
    def broken():
        raise PWError("Target page, context or browser has been closed")

    with pytest.raises(PWError):
        discover_rows(broken, lambda: None)


def test_discovery_rejects_non_positive_target():
    with pytest.raises(ValueError):
        discover_rows(lambda: 0, lambda: None, target_count=0)


def _page_with_rows(total, page_size=5):
    browser = FakeBrowser([FakeSite("ACP-2", [f"L{i:03d}" for i in range(total)], page_size=page_size)])
    page = browser.new_context().new_page()
    page.goto("https://host/#/process/shipout/acp-2")
    return page, FakeRows(page)


def test_accessor_returns_rendered_row_without_probing():
    page, rows = _page_with_rows(12)
    calls = []
    row = ensure_row(rows, 3, lambda: calls.append(1))
    assert row.index == 3
    assert calls == []


def test_accessor_probes_until_index_is_rendered():
    page, rows = _page_with_rows(12)
    probe = make_probe(page, rows, settle_ms=25)
    row = ensure_row(rows, 11, probe, attempts=10)
    assert row.lot == "L011"
    assert page.waits == [25, 25]


def test_accessor_gives_up_after_bounded_attempts():
    page, rows = _page_with_rows(6)
    probe = make_probe(page, rows, settle_ms=1)
    with pytest.raises(RowNotFound):
        ensure_row(rows, 8, probe, attempts=4)
    assert page.waits == [1, 1, 1, 1]


def test_wheel_probe_scrolls_by_distance():
    page, rows = _page_with_rows(12)
    probe = make_probe(page, rows, mode="wheel", scroll_distance=900, settle_ms=5)
    probe()
    assert rows.count() == 10
    assert page.waits == [5]


def test_unknown_probe_mode_rejected():
    page, rows = _page_with_rows(1)
    with pytest.raises(ValueError):
        make_probe(page, rows, mode="teleport")


def test_reload_retries_then_succeeds():
    page, rows = _page_with_rows(3)
    page.site.reload_failures = 2
    reload_page(page, attempts=3, backoff_ms=10)
    assert page.site.reloads == 1
    assert page.waits == [10, 20]


def test_reload_exhaustion_is_fatal():
    page, rows = _page_with_rows(3)
    page.site.reload_failures = 5
    with pytest.raises(ReloadFailed):
        reload_page(page, attempts=3, backoff_ms=1)


def test_find_by_role_text_is_exact_and_regex_is_passed_through():
    seen = []

    class Scope:
        def get_by_role(self, role, **kw):
            seen.append((role, kw))

    find_by_role(Scope(), "button", "출력")
    pattern = re.compile(r"ACP-2 COA_.*\.xlsx")
    find_by_role(Scope(), "button", pattern)
    assert seen == [("button", {"name": "출력", "exact": True}), ("button", {"name": pattern})]


def test_shrinking_count_counts_as_no_growth():
    counts = iter([10, 9, 9, 9, 9, 9, 9])
    probes = []
    found = discover_rows(lambda: next(counts), lambda: probes.append(1), target_count=30, stagnation_threshold=3)
    assert found == 9
    assert len(probes) == 3


def test_virtualized_list_that_shrinks_and_regrows_still_stops():
    counts = iter([10, 8, 10, 8, 10, 8, 10, 8])
    probes = []
    discover_rows(lambda: next(counts), lambda: probes.append(1), target_count=30, stagnation_threshold=3)
    assert len(probes) == 3


def test_find_by_role_substring_match():
    seen = []

    class Scope:
        def get_by_role(self, role, **kw):
            seen.append(kw)

    find_by_role(Scope(), "button", "출력", exact=False)
    assert seen == [{"name": "출력", "exact": False}]
