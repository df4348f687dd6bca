"""Tests for proximity-based audio routing."""

from __future__ import annotations

import pytest

from proximity_relay.common.attenuation import Curve, InvalidParameter
from proximity_relay.common.protocol import AudioRelay
from proximity_relay.server.audio_router import ProximityRouter, UnknownSender
from proximity_relay.server.outbox import Outbox
from proximity_relay.server.registry import PlayerRegistry

from tests.conftest import place


def drain(outbox: Outbox | None) -> list[object]:
    assert outbox is not None
    frames = []
    while (frame := outbox.get_nowait()) is not None:
        frames.append(frame)
    return frames


class TestRecipients:
    """Tests for the proximity filter."""

    @pytest.mark.parametrize("curve", list(Curve))
    def test_far_player_excluded_for_every_curve(
        self, registry: PlayerRegistry, router: ProximityRouter, curve: Curve
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 5.0, 0.0)
        place(registry, "C", 30.0, 0.0)

        result = router.route("A", "AAAA", 20.0, curve)

        assert result.recipient_ids == {"B"}
        assert drain(registry.outbox_for("C")) == []

    def test_source_not_in_recipients(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 1.0, 0.0)

        result = router.route("A", "AAAA", 20.0)

        assert "A" not in result.recipient_ids
        assert drain(registry.outbox_for("A")) == []

    def test_boundary_is_inclusive(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 12.0, 16.0)  # exactly 20 away

        result = router.route("A", "AAAA", 20.0, "linear")

        assert result.recipient_ids == {"B"}
        assert result.deliveries[0].gain == 0.0

    def test_height_ignored(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        registry.connect("B")
        registry.update_position("B", 3.0, 4.0, y=500.0)

        result = router.route("A", "AAAA", 20.0, "linear")

        assert result.deliveries[0].distance == 5.0

    def test_recipients_helper(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 0.0, 3.0)
        place(registry, "C", 0.0, 30.0)

        found = router.recipients("A", 20.0)

        assert [(entry.id, d) for entry, d in found] == [("B", 3.0)]

    def test_route_agrees_with_recipients(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        for i, x in enumerate((3.0, 19.5, 20.0, 20.5, -7.0, 40.0)):
            place(registry, f"p{i}", x, 0.0)

        expected = {entry.id: d for entry, d in router.recipients("A", 20.0)}
        result = router.route("A", "AAAA", 20.0)

        assert {d.recipient_id: d.distance for d in result.deliveries} == expected

    def test_tiny_max_distance_logarithmic(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 1e-18, 0.0)

        result = router.route("A", "AAAA", 1e-17, "logarithmic")

        assert result.recipient_ids == {"B"}
        assert result.deliveries[0].gain == pytest.approx(0.9)

    def test_mutual_hearing(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 3.0, 0.0)

        ab = router.route("A", "AAAA", 20.0).deliveries[0]
        ba = router.route("B", "AAAA", 20.0).deliveries[0]

        assert ab.gain == ba.gain
        assert ab.pan == -ba.pan


class TestRoute:
    """Tests for the fan-out itself."""

    def test_relay_frame_contents(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 10.0, 0.0)

        result = router.route("A", "AAEC", 20.0, "exponential")

        frames = drain(registry.outbox_for("B"))
        assert len(frames) == 1
        frame = frames[0]
        assert isinstance(frame, AudioRelay)
        assert frame.player_nick == "A"
        assert frame.audio_data == "AAEC"
        assert (frame.x, frame.z) == (0.0, 0.0)
        assert frame.gain == pytest.approx(0.25)
        # A is to B's left
        assert frame.pan == -1.0
        assert result.deliveries[0].gain == frame.gain

    def test_unknown_sender(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "B", 0.0, 0.0)

        with pytest.raises(UnknownSender):
            router.route("ghost", "AAAA", 20.0)

        assert router.stats.unknown_sender == 1
        assert drain(registry.outbox_for("B")) == []

    def test_invalid_max_distance(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 0.0, 0.0)

        with pytest.raises(InvalidParameter):
            router.route("A", "AAAA", 0.0)

        assert drain(registry.outbox_for("B")) == []

    def test_per_sender_order_preserved(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 1.0, 0.0)

        for payload in ("AAAA", "BBBB", "CCCC", "DDDD"):
            router.route("A", payload, 20.0)

        frames = drain(registry.outbox_for("B"))
        assert [f.audio_data for f in frames] == ["AAAA", "BBBB", "CCCC", "DDDD"]

    def test_full_outbox_drops_newest_silently(self) -> None:
        registry = PlayerRegistry(outbox_size=2)
        router = ProximityRouter(registry)
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 1.0, 0.0)

        results = [router.route("A", p, 20.0) for p in ("AAAA", "BBBB", "CCCC")]

        assert results[2].dropped == ("B",)
        assert results[2].recipient_ids == {"B"}
        assert router.stats.dropped_audio == 1
        frames = drain(registry.outbox_for("B"))
        assert [f.audio_data for f in frames] == ["AAAA", "BBBB"]

    def test_send_failure_isolated(self, registry: PlayerRegistry) -> None:
        failures: list[str] = []
        router = ProximityRouter(registry, on_send_failure=failures.append)
        place(registry, "A", 0.0, 0.0)
        broken: Outbox[object] = Outbox(4, name="B")
        registry.connect("B", broken)
        registry.update_position("B", 1.0, 0.0)
        place(registry, "C", 2.0, 0.0)
        broken.close()

        result = router.route("A", "AAAA", 20.0)

        assert result.failed == ("B",)
        assert [d.recipient_id for d in result.deliveries] == ["C"]
        assert failures == ["B"]
        assert router.stats.send_failures == 1
        assert len(drain(registry.outbox_for("C"))) == 1

    def test_stats(self, registry: PlayerRegistry, router: ProximityRouter) -> None:
        place(registry, "A", 0.0, 0.0)
        place(registry, "B", 1.0, 0.0)
        place(registry, "C", 2.0, 0.0)

        router.route("A", "AAAA", 20.0)
        router.route("A", "AAAA", 20.0)

        assert router.stats.packets_routed == 2
        assert router.stats.deliveries == 4
        assert router.stats.as_dict()["deliveries"] == 4

    def test_large_player_count(
        self, registry: PlayerRegistry, router: ProximityRouter
    ) -> None:
        place(registry, "src", 50.0, 50.0)
        for i in range(100):
            place(registry, f"p{i}", 40.0 + (i % 21), 40.0 + (i // 21))

        result = router.route("src", "AAAA", 8.0, "linear")

        assert len(result.deliveries) > 10
        for delivery in result.deliveries:
            assert 0.0 <= delivery.gain <= 1.0
            assert delivery.distance <= 8.0
