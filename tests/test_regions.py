from gateway.regions import REGIONS, SPIKE_MAX, RegionLatencyAdvertiser, find_region

from tests.conftest import FakeClock


class StubRng:
    """Always draws the top of each range; random() returns a fixed roll."""

    def __init__(self, roll: float):
        self.roll = roll
        self.draws = 0

    def uniform(self, a, b):
        return b

    def random(self):
        self.draws += 1
        return self.roll


def test_find_region():
    assert find_region("Germany").region == "eu-central-1"
    assert find_region("Atlantis") is None
    assert find_region(None) is None


def test_known_regions():
    names = [r.name for r in REGIONS]
    assert names == ["United States", "Germany", "India", "Singapore", "United Kingdom"]


def test_unknown_region_has_no_ping():
    advertiser = RegionLatencyAdvertiser(clock=FakeClock())
    assert advertiser.current_ping("Atlantis") is None
    assert advertiser.current_ping(None) is None


def test_ping_without_spike():
    advertiser = RegionLatencyAdvertiser(rng=StubRng(roll=0.99), clock=FakeClock())
    # base 85 + variance 20
    assert advertiser.current_ping("Germany") == 105


def test_ping_with_spike():
    advertiser = RegionLatencyAdvertiser(rng=StubRng(roll=0.0), clock=FakeClock())
    # (45 + 15) * 2.3
    assert advertiser.current_ping("United States") == round(60 * SPIKE_MAX)


def test_value_held_until_refresh_deadline():
    clock = FakeClock(start=0.0)
    rng = StubRng(roll=0.99)
    advertiser = RegionLatencyAdvertiser(rng=rng, clock=clock)
    initial_draws = rng.draws
    assert initial_draws == len(REGIONS)

    # deadline is now + 8s with the stub
    clock.advance(7.9)
    advertiser.current_ping("India")
    assert rng.draws == initial_draws

    clock.advance(0.1)
    advertiser.current_ping("India")
    assert rng.draws == initial_draws + 1

    # fresh deadline, so no second draw
    advertiser.current_ping("India")
    assert rng.draws == initial_draws + 1


def test_real_rng_stays_in_plausible_range():
    import random

    clock = FakeClock()
    advertiser = RegionLatencyAdvertiser(rng=random.Random(42), clock=clock)
    for _ in range(50):
        clock.advance(10)
        ping = advertiser.current_ping("Singapore")
        assert 150 <= ping <= round(230 * SPIKE_MAX)


def test_snapshot_shape():
    snapshot = RegionLatencyAdvertiser(clock=FakeClock()).snapshot()
    assert len(snapshot) == len(REGIONS)
    first = snapshot[0]
    assert set(first) == {"name", "flag", "region", "description", "ping"}
    assert first["name"] == "United States"
    assert first["ping"] >= 1
