"""Tests for the annotation engine."""

import copy

import pytest

from lapchart.analysis.annotations import (
    AnnotationConfig,
    AnnotationEngine,
    generate_annotations,
    short_team,
)
from lapchart.errors import ConfigError
from lapchart.timing.model import CarAnnotations, PitMarker, SettleMarker


class TestShortTeam:
    """Test team names in reason text."""

    def test_short_names_kept(self):
        """Test short names pass through with a leading space."""
        assert short_team("AO Racing") == " AO Racing"
        assert short_team("") == ""
        assert short_team("   ") == ""

    def test_long_names_shortened(self):
        """Test long names keep their first two words."""
        assert short_team("Wayne Taylor Racing (Taylor / Albuquerque)") == " Wayne Taylor"
        assert short_team("Supercalifragilisticexpialidocious") == " Supercalifragilistic"


class TestReasons:
    """Test position change reasons."""

    def test_pass_on_pace(self, race_factory):
        """Test a green pass names the car passed."""
        data = race_factory({1: {"positions": [1, 2]}, 2: {"positions": [2, 1]}})
        ann = generate_annotations(data)
        assert ann[2].reasons == {2: "Gained — passed #1 Team 1 on pace"}
        assert ann[1].reasons == {2: "Lost — #2 Team 2 on pace"}

    def test_pass_under_yellow(self, race_factory):
        """Test position changes on caution laps are marked as yellow."""
        data = race_factory(
            {1: {"positions": [1, 2]}, 2: {"positions": [2, 1]}},
            fcy=((2, 2),),
        )
        ann = generate_annotations(data)
        assert ann[2].reasons[2] == "Gained — passed #1 Team 1 (yellow)"

    def test_pass_pitting_car(self, race_factory):
        """Test passing a car in the pits is attributed to the stop."""
        data = race_factory({1: {"positions": [1, 2], "pits": [2]}, 2: {"positions": [2, 1]}})
        ann = generate_annotations(data)
        assert ann[2].reasons[2] == "Gained — passed #1 Team 1 pitted"
        assert ann[1].reasons[2] == "Pit stop"

    def test_many_crossings_summarized(self, race_factory):
        """Test more crossings than the name limit give a count."""
        cars = {n: {"positions": [n, n + 1]} for n in range(1, 8)}
        cars[8] = {"positions": [8, 1]}
        ann = generate_annotations(race_factory(cars))
        assert ann[8].reasons[2] == "Gained 7 positions"
        assert ann[3].reasons[2] == "Lost — #8 Team 8 on pace"

    def test_no_crossing_data(self, race_factory):
        """Test a change without identifiable crossings gives a count."""
        ann = generate_annotations(race_factory({4: {"positions": [1, 2]}}))
        assert ann[4].reasons == {2: "Lost 1 position"}

    def test_first_lap_has_no_reason(self, race_factory):
        """Test the first recorded lap is never explained."""
        ann = generate_annotations(race_factory({4: {"positions": [3, 3]}}))
        assert ann[4].reasons == {}


class TestPitStops:
    """Test pit markers and pit stop reasons."""

    def test_pit_cycle_loss(self, race_factory):
        """Test the net pit cycle change and the pit marker."""
        data = race_factory({1: {"positions": [1, 1, 4, 3, 2], "pits": [3]}})
        ann = generate_annotations(data)
        assert ann[1].reasons[3] == "Pit stop — Lost 2 in pit cycle"
        assert [(p.lap, p.label, p.color) for p in ann[1].pits] == [(3, "Pit 1", "#fbbf24")]

    def test_pit_markers_numbered(self, race_factory):
        """Test pit stops are numbered in order."""
        data = race_factory({1: {"positions": [1] * 8, "pits": [3, 6]}})
        ann = generate_annotations(data)
        assert [p.label for p in ann[1].pits] == ["Pit 1", "Pit 2"]

    def test_also_pitting(self, race_factory):
        """Test same-class cars pitting on the same lap are named."""
        data = race_factory({
            5: {"positions": [1] * 22, "pits": [20]},
            9: {"positions": [2] * 22, "pits": [20]},
            7: {"cls": "GTP", "positions": [3] * 22, "pits": [20]},
        })
        ann = generate_annotations(data)
        assert ann[5].reasons[20] == "Pit stop — also pitting: #9"
        assert ann[9].reasons[20] == "Pit stop — also pitting: #5"
        assert ann[7].reasons[20] == "Pit stop"

    def test_many_also_pitting(self, race_factory):
        """Test a large group of pitting class cars is counted."""
        cars = {n: {"positions": [n] * 5, "pits": [3]} for n in range(1, 8)}
        ann = generate_annotations(race_factory(cars))
        assert ann[1].reasons[3] == "Pit stop — 6 class cars also pitting"


class TestSettles:
    """Test settle markers."""

    def test_after_caution(self, race_factory):
        """Test the position after a caution is compared to before it."""
        data = race_factory(
            {3: {"positions": [3] * 9 + [4, 4, 5, 5]}},
            fcy=((10, 12),),
        )
        settles = generate_annotations(data)[3].settles
        assert settles == [SettleMarker(13, 5, "Settled P5", "Was P3 · Lost 2", "#f87171")]

    def test_after_pit_stop(self, race_factory):
        """Test a green pit stop settles on the first clear lap."""
        data = race_factory({1: {"positions": [4, 4, 6, 3, 3], "pits": [3]}})
        settles = generate_annotations(data)[1].settles
        assert [(s.lap, s.label, s.subtitle, s.color) for s in settles] == [
            (4, "Settled P3", "Was P4 · Gained 1", "#4ade80")
        ]

    def test_pit_settle_near_caution_settle(self, race_factory):
        """Test a pit settle close to a caution settle is dropped."""
        data = race_factory(
            {1: {"positions": [2, 2, 2, 2, 3, 5, 4, 4], "pits": [6]}},
            fcy=((3, 4),),
        )
        settles = generate_annotations(data)[1].settles
        assert [(s.lap, s.subtitle) for s in settles] == [(5, "Was P2 · Lost 1")]

    def test_zero_net_caution_still_covers(self, race_factory):
        """Test an unchanged caution result still blocks a nearby pit settle."""
        data = race_factory(
            {1: {"positions": [2, 2, 2, 2, 2, 5, 4, 4], "pits": [6]}},
            fcy=((3, 4),),
        )
        assert generate_annotations(data)[1].settles == []

    def test_no_change_no_marker(self, race_factory):
        """Test a pit stop without net change makes no settle marker."""
        data = race_factory({1: {"positions": [2, 2, 5, 2, 2], "pits": [3]}})
        assert generate_annotations(data)[1].settles == []


class TestMerge:
    """Test merging with seed annotations."""

    @pytest.fixture
    def data(self, race_factory):
        return race_factory({
            1: {"positions": [1, 2, 2, 2], "pits": [3]},
            2: {"positions": [2, 1, 1, 1]},
        })

    def test_seed_not_modified(self, data):
        """Test seed annotations are left untouched and survive."""
        seed = {
            2: CarAnnotations(
                reasons={2: "Spun T5", 4: "Off T3"},
                pits=[PitMarker(lap=3, label="S1 Derani", color="#fbbf24")],
            ),
        }
        before = copy.deepcopy(seed)
        ann = AnnotationEngine().generate(data, seed)

        assert seed == before
        assert ann[2].reasons[2] == "Gained — passed #1 Team 1 on pace; Spun T5"
        assert ann[2].reasons[4] == "Off T3"
        assert ann[2].pits == seed[2].pits

    def test_seed_pit_marker_wins(self, data):
        """Test an engine pit marker on a seeded lap is dropped."""
        seed = {1: CarAnnotations(pits=[PitMarker(lap=3, label="S1→S2 Smith", color="#fbbf24")])}
        ann = AnnotationEngine().generate(data, seed)
        assert [p.label for p in ann[1].pits] == ["S1→S2 Smith"]

    def test_engine_reason_prefixes_similar_seed(self, data):
        """Test a seeded reason that starts like the engine reason still gets it prefixed."""
        seed = {1: CarAnnotations(reasons={3: "Pit stop inferred from position drop (P2 → P8)"})}
        ann = AnnotationEngine().generate(data, seed)
        assert ann[1].reasons[3] == "Pit stop; Pit stop inferred from position drop (P2 → P8)"

    def test_seed_settles_skip_inference(self, race_factory):
        """Test seeded settle markers replace inferred ones."""
        data = race_factory({1: {"positions": [4, 4, 6, 3, 3], "pits": [3]}})
        seeded = SettleMarker(5, 3, "Settled P3", "custom", "#000000")
        ann = AnnotationEngine().generate(data, {1: CarAnnotations(settles=[seeded])})
        assert ann[1].settles == [seeded]

    def test_markers_sorted_by_lap(self, race_factory):
        """Test merged markers come out in lap order."""
        data = race_factory({1: {"positions": [1] * 8, "pits": [2, 6]}})
        seed = {1: CarAnnotations(pits=[PitMarker(lap=4, label="S1 DT", color="#f87171")])}
        ann = AnnotationEngine().generate(data, seed)
        assert [p.lap for p in ann[1].pits] == [2, 4, 6]

    def test_seed_only_car(self, data):
        """Test seed entries for cars without laps pass through."""
        seed = {99: CarAnnotations(reasons={1: "Did not start"})}
        ann = AnnotationEngine().generate(data, seed)
        assert ann[99] == seed[99]
        assert ann[99] is not seed[99]

    def test_repeat_call_is_identical(self, race_factory):
        """Test the same race and seed always give the same annotations."""
        data = race_factory(
            {
                1: {"positions": [1, 1, 3, 2, 2, 2], "pits": [3]},
                2: {"positions": [2, 2, 1, 1, 3, 1], "pits": [5]},
                3: {"positions": [3, 3, 2, 3, 1, 3]},
            },
            fcy=((2, 2),),
        )
        seed = {2: CarAnnotations(reasons={5: "DT Served"})}
        engine = AnnotationEngine()
        first = engine.generate(data, seed)
        assert engine.generate(data, seed) == first
        assert first[2].reasons[5].endswith("; DT Served")


class TestConfig:
    """Test engine configuration."""

    def test_invalid_window(self):
        """Test empty search windows are rejected."""
        with pytest.raises(ConfigError):
            AnnotationConfig(pit_cycle_window=0)

    def test_also_pitting_limit(self, race_factory):
        """Test the also-pitting limit is configurable."""
        cars = {n: {"positions": [n] * 5, "pits": [3]} for n in range(1, 4)}
        ann = generate_annotations(race_factory(cars), config=AnnotationConfig(also_pitting_limit=1))
        assert ann[1].reasons[3] == "Pit stop — 2 class cars also pitting"
