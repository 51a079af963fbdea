from recapbot.schemas.recap import RecapSummary
from recapbot.services.draft_cache import DraftCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_pop_reads_once():
    cache = DraftCache(ttl_seconds=60, clock=FakeClock())
    draft = RecapSummary(progress="p")
    cache.put("U1", "T1", draft)

    assert cache.pop("U1", "T1") == draft
    assert cache.pop("U1", "T1") is None


def test_peek_does_not_consume():
    cache = DraftCache(ttl_seconds=60, clock=FakeClock())
    cache.put("U1", "T1", RecapSummary(progress="p"))

    assert cache.peek("U1", "T1") is not None
    assert cache.peek("U1", "T1") is not None
    assert len(cache) == 1


def test_entries_expire():
    clock = FakeClock()
    cache = DraftCache(ttl_seconds=60, clock=clock)
    cache.put("U1", "T1", RecapSummary(progress="p"))

    clock.now = 59.0
    assert cache.peek("U1", "T1") is not None
    clock.now = 60.0
    assert cache.peek("U1", "T1") is None
    assert len(cache) == 0


def test_keys_are_scoped_by_team():
    cache = DraftCache(ttl_seconds=60, clock=FakeClock())
    cache.put("U1", "T1", RecapSummary(progress="t1"))

    assert cache.pop("U1", "T2") is None
    assert cache.pop("U1", None) is None
    assert cache.pop("U1", "T1").progress == "t1"
