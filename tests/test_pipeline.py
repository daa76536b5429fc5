import random
import threading
import time

import pytest

from appconfig import POKEMON_ID_MAX, POKEMON_ID_MIN
from catalog import FALLBACK_NAME, CatalogClient, CatalogHTTPError, CatalogShapeError
from helpers import NIKKE, POKEAPI, FakeSession, named_resource, nikke_payload, pokeapi_routes, pokemon_payload
from pipeline import NikkePipeline, PokemonPipeline, run_ordered


class TestRunOrdered:
    def test_results_follow_input_order_not_completion_order(self):
        delays = [0.05, 0.0, 0.03, 0.01]

        def make(idx, delay):
            def call():
                time.sleep(delay)
                return idx
            return call

        assert run_ordered([make(i, d) for i, d in enumerate(delays)], max_workers=4) == [0, 1, 2, 3]

    def test_empty_input(self):
        assert run_ordered([]) == []

    def test_first_failure_is_raised(self):
        def ok():
            return 1

        def boom():
            raise CatalogHTTPError(500, "https://example/x")

        with pytest.raises(CatalogHTTPError):
            run_ordered([ok, boom, ok])


class TestPokemonPipeline:
    def test_builds_localized_record(self, pokeapi_session):
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=pokeapi_session), language="ja-Hrkt")
        record = pipeline.build_display_record(25)

        assert record.catalog == "pokemon"
        assert record.key == "25"
        assert record.name == "pikachu"
        assert record.title == "ピカチュウ"
        assert record.image_url == "https://raw.example/sprites/25.png"
        assert record.facts == (("fact.height", "4 dm"), ("fact.weight", "60 hg"))
        abilities = record.section("section.abilities")
        types = record.section("section.types")
        assert [e.name for e in abilities.entries] == ["せいでんき", FALLBACK_NAME]
        assert [e.key for e in abilities.entries] == ["static", "lightning-rod"]
        assert [e.name for e in types.entries] == ["でんき"]
        assert record.stats[0] == ("hp", 35)
        assert len(record.stats) == 6

    def test_sub_field_count_matches_references(self, pokeapi_session):
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=pokeapi_session))
        record = pipeline.build_display_record(25)
        payload = pokemon_payload(25)
        assert record.sub_field_count == len(payload["abilities"]) + len(payload["types"])

    def test_title_falls_back_to_canonical_name(self):
        routes = pokeapi_routes()
        routes[f"{POKEAPI}/pokemon-species/25/"] = named_resource("pikachu", {"en": "Pikachu"})
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=FakeSession(routes)), language="ja-Hrkt")
        assert pipeline.build_display_record(25).title == "pikachu"

    def test_other_language_tag(self, pokeapi_session):
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=pokeapi_session), language="en")
        record = pipeline.build_display_record(25)
        assert record.title == "Pikachu"
        assert [e.name for e in record.section("section.abilities").entries] == ["Static", "Lightning Rod"]

    def test_same_id_and_data_gives_equal_records(self, pokeapi_session):
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=pokeapi_session))
        assert pipeline.build_display_record(25) == pipeline.build_display_record(25)

    def test_sub_resolution_failure_fails_whole_record(self):
        routes = pokeapi_routes()
        routes[f"{POKEAPI}/type/13/"] = (503, "unavailable")
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=FakeSession(routes)))
        with pytest.raises(CatalogHTTPError):
            pipeline.build_display_record(25)

    def test_primary_failure_raises(self):
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=FakeSession({})))
        with pytest.raises(CatalogHTTPError):
            pipeline.build_display_record(25)

    def test_shape_mismatch_raises(self):
        routes = pokeapi_routes()
        routes[f"{POKEAPI}/ability/9/"] = {"names": [{"name": "x"}]}
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=FakeSession(routes)))
        with pytest.raises(CatalogShapeError):
            pipeline.build_display_record(25)

    @pytest.mark.parametrize("bad_id", [POKEMON_ID_MIN - 1, POKEMON_ID_MAX + 1])
    def test_rejects_out_of_range_id(self, bad_id, pokeapi_session):
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=pokeapi_session))
        with pytest.raises(ValueError):
            pipeline.build_display_record(bad_id)
        assert pokeapi_session.calls == []

    def test_random_id_stays_in_range(self):
        pipeline = PokemonPipeline(CatalogClient(POKEAPI, session=FakeSession({})), rng=random.Random(7))
        ids = {pipeline.pick_id() for _ in range(500)}
        assert min(ids) >= POKEMON_ID_MIN
        assert max(ids) <= POKEMON_ID_MAX

    def test_order_preserved_when_resolutions_finish_out_of_order(self):
        payload = pokemon_payload(25)
        payload["abilities"] = [
            {"ability": {"name": f"ab{i}", "url": f"{POKEAPI}/ability/{i}/"}, "is_hidden": False, "slot": i}
            for i in range(1, 6)
        ]
        routes = pokeapi_routes()
        routes[f"{POKEAPI}/pokemon/25"] = payload
        for i in range(1, 6):
            routes[f"{POKEAPI}/ability/{i}/"] = named_resource(f"ab{i}", {"ja-Hrkt": f"とくせい{i}"})

        class SlowFirstSession(FakeSession):
            def get(self, url, headers=None, timeout=None):
                if url.endswith("/ability/1/"):
                    time.sleep(0.05)
                return super().get(url, headers=headers, timeout=timeout)

        session = SlowFirstSession(routes)
        record = PokemonPipeline(CatalogClient(POKEAPI, session=session), max_workers=5).build_display_record(25)
        names = [e.name for e in record.section("section.abilities").entries]
        assert names == [f"とくせい{i}" for i in range(1, 6)]
        assert record.sub_field_count == 6

    def test_sub_references_are_resolved_concurrently(self):
        routes = pokeapi_routes()
        barrier = threading.Barrier(3, timeout=2)

        class BarrierSession(FakeSession):
            def get(self, url, headers=None, timeout=None):
                if "/ability/" in url or "/type/" in url:
                    barrier.wait()
                return super().get(url, headers=headers, timeout=timeout)

        session = BarrierSession(routes)
        record = PokemonPipeline(CatalogClient(POKEAPI, session=session), max_workers=3).build_display_record(25)
        assert record.sub_field_count == 3


class TestNikkePipeline:
    def test_forced_name(self):
        session = FakeSession({f"{NIKKE}/characters/anis": nikke_payload("anis")})
        record = NikkePipeline(CatalogClient(NIKKE, session=session)).build_display_record("anis")
        assert record.catalog == "nikke"
        assert record.title == "anis"
        assert record.image_url == "https://img.example/anis.png"
        assert dict(record.facts) == {
            "fact.rarity": "SR",
            "fact.element": "Electric",
            "fact.weapon": "RL",
            "fact.class": "Supporter",
        }
        skills = record.section("section.skills").entries
        assert [s.name for s in skills] == ["Sparkling Summer", "Cocktail Bomb"]
        assert skills[0].description == "Increases ATK."
        assert record.stats == ()
        assert session.calls == [f"{NIKKE}/characters/anis"]

    def test_random_pick_from_roster(self):
        session = FakeSession(
            {
                f"{NIKKE}/characters": [{"name": "rapi"}, {"name": "neon"}],
                f"{NIKKE}/characters/rapi": nikke_payload("rapi"),
                f"{NIKKE}/characters/neon": nikke_payload("neon"),
            }
        )
        record = NikkePipeline(CatalogClient(NIKKE, session=session), rng=random.Random(1)).build_display_record()
        assert record.name in ("rapi", "neon")
        assert session.calls[0] == f"{NIKKE}/characters"

    def test_empty_roster_fails(self):
        session = FakeSession({f"{NIKKE}/characters": []})
        with pytest.raises(CatalogShapeError):
            NikkePipeline(CatalogClient(NIKKE, session=session)).build_display_record()
