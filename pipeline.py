import logging
import random
import threading
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Tuple

from appconfig import POKEMON_ID_MAX, POKEMON_ID_MIN
from catalog import (
    CatalogClient,
    CatalogShapeError,
    LocalizedName,
    fetch_nikke,
    fetch_nikke_roster,
    fetch_pokemon,
    resolve_localized_name,
)

LOGGER = logging.getLogger("dexroll.pipeline")


# =========================
# Models
# =========================
@dataclass(frozen=True)
class DisplaySection:
    label_key: str
    entries: Tuple[LocalizedName, ...]


@dataclass(frozen=True)
class DisplayRecord:
    catalog: str
    key: str
    name: str
    title: str
    image_url: str
    facts: Tuple[Tuple[str, str], ...] = ()
    sections: Tuple[DisplaySection, ...] = ()
    stats: Tuple[Tuple[str, int], ...] = ()

    @property
    def sub_field_count(self) -> int:
        return sum(len(s.entries) for s in self.sections)

    def section(self, label_key: str) -> Optional[DisplaySection]:
        for s in self.sections:
            if s.label_key == label_key:
                return s
        return None


def run_ordered(calls: List[Callable[[], object]], max_workers: int = 8) -> list:
    """Run calls concurrently and return their results in input order.

    The first failure cancels whatever has not started yet and is re-raised.
    """
    if not calls:
        return []
    results: list = [None] * len(calls)
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(calls)))) as executor:
        futures = {executor.submit(fn): idx for idx, fn in enumerate(calls)}
        try:
            for fut in as_completed(futures):
                results[futures[fut]] = fut.result()
        except BaseException:
            for fut in futures:
                fut.cancel()
            raise
    return results


# =========================
# Aggregation pipelines
# =========================
class PokemonPipeline:
    def __init__(
        self,
        client: CatalogClient,
        language: str = "ja-Hrkt",
        rng: Optional[random.Random] = None,
        max_workers: int = 8,
    ):
        self.client = client
        self.language = language
        self.rng = rng or random.Random()
        self.max_workers = max_workers

    def pick_id(self) -> int:
        return self.rng.randint(POKEMON_ID_MIN, POKEMON_ID_MAX)

    def build_display_record(self, record_id: Optional[int] = None) -> DisplayRecord:
        if record_id is None:
            record_id = self.pick_id()
        if not POKEMON_ID_MIN <= record_id <= POKEMON_ID_MAX:
            raise ValueError(f"Pokemon id {record_id} outside {POKEMON_ID_MIN}..{POKEMON_ID_MAX}")
        lang = self.language

        LOGGER.debug("Fetching pokemon #%s (lang=%s)", record_id, lang)
        pokemon = fetch_pokemon(self.client, record_id)
        species = resolve_localized_name(self.client, pokemon.species.url, lang, key=pokemon.species.name)

        refs = [(a.ability.name, a.ability.url) for a in pokemon.abilities]
        refs += [(t.type.name, t.type.url) for t in pokemon.types]
        calls = [
            (lambda name=name, url=url: resolve_localized_name(self.client, url, lang, key=name))
            for name, url in refs
        ]
        resolved: List[LocalizedName] = run_ordered(calls, self.max_workers)
        n_abilities = len(pokemon.abilities)

        return DisplayRecord(
            catalog="pokemon",
            key=str(pokemon.id),
            name=pokemon.name,
            title=pokemon.name if species.is_fallback else species.name,
            image_url=pokemon.sprites.front_default or "",
            facts=(
                ("fact.height", f"{pokemon.height} dm"),
                ("fact.weight", f"{pokemon.weight} hg"),
            ),
            sections=(
                DisplaySection("section.abilities", tuple(resolved[:n_abilities])),
                DisplaySection("section.types", tuple(resolved[n_abilities:])),
            ),
            stats=tuple((s.stat.name, s.base_stat) for s in pokemon.stats),
        )


class NikkePipeline:
    def __init__(self, client: CatalogClient, rng: Optional[random.Random] = None):
        self.client = client
        self.rng = rng or random.Random()

    def build_display_record(self, name: Optional[str] = None) -> DisplayRecord:
        if name is None:
            roster = fetch_nikke_roster(self.client)
            if not roster:
                raise CatalogShapeError("NIKKE roster is empty")
            name = self.rng.choice(roster)

        LOGGER.debug("Fetching NIKKE %r", name)
        nikke = fetch_nikke(self.client, name)
        skills = tuple(
            LocalizedName(key=s.name, name=s.name, language="en", description=s.description)
            for s in nikke.skills
        )
        return DisplayRecord(
            catalog="nikke",
            key=nikke.name,
            name=nikke.name,
            title=nikke.name,
            image_url=nikke.images.full,
            facts=(
                ("fact.rarity", nikke.rarity),
                ("fact.element", nikke.element),
                ("fact.weapon", nikke.weapon),
                ("fact.class", nikke.class_),
            ),
            sections=(DisplaySection("section.skills", skills),),
        )


# =========================
# View state
# =========================
@dataclass(frozen=True)
class ViewState:
    record: Optional[DisplayRecord] = None
    busy: bool = False
    generation: int = 0
    error: Optional[str] = None


Listener = Callable[[ViewState], None]


class ViewStore:
    """Single current-record slot. Every transition swaps in a new ViewState."""

    def __init__(self, initial: Optional[ViewState] = None):
        self._state = initial or ViewState()
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> ViewState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, state: ViewState) -> None:
        for listener in list(self._listeners):
            listener(state)

    def begin_cycle(self) -> int:
        with self._lock:
            gen = self._state.generation + 1
            self._state = replace(self._state, busy=True, generation=gen, error=None)
            state = self._state
        LOGGER.debug("Cycle start: gen=%s", gen)
        self._emit(state)
        return gen

    def publish(self, generation: int, record: DisplayRecord) -> bool:
        with self._lock:
            if generation != self._state.generation:
                LOGGER.debug("Ignoring stale record gen=%s current=%s", generation, self._state.generation)
                return False
            self._state = ViewState(record=record, busy=False, generation=generation, error=None)
            state = self._state
        LOGGER.debug("Cycle done: gen=%s record=%s/%s", generation, record.catalog, record.key)
        self._emit(state)
        return True

    def fail(self, generation: int, exc: BaseException) -> bool:
        with self._lock:
            if generation != self._state.generation:
                LOGGER.debug("Ignoring stale error gen=%s current=%s", generation, self._state.generation)
                return False
            self._state = replace(self._state, busy=False, error=str(exc) or exc.__class__.__name__)
            state = self._state
        self._emit(state)
        return True


def _spawn_daemon(task: Callable[[], None]) -> None:
    threading.Thread(target=task, daemon=True).start()


class RecordRefresher:
    """Runs fetch cycles off the UI thread and settles them through ``dispatch``.

    ``request`` holds a refresh asked for while a cycle is running and starts it
    once that cycle settles. Only the latest held request is kept.
    """

    def __init__(
        self,
        store: ViewStore,
        dispatch: Optional[Callable[[Callable[[], None]], None]] = None,
        spawn: Optional[Callable[[Callable[[], None]], None]] = None,
    ):
        self.store = store
        self.dispatch = dispatch or (lambda fn: fn())
        self.spawn = spawn or _spawn_daemon
        self._held: Optional[Callable[[], Callable[[], DisplayRecord]]] = None

    @property
    def has_held_request(self) -> bool:
        return self._held is not None

    def request(self, make_build: Callable[[], Callable[[], DisplayRecord]]) -> Optional[int]:
        # make_build runs when the cycle starts, so it reads the settings of that moment.
        if self.store.state.busy:
            self._held = make_build
            LOGGER.debug("Refresh held until gen=%s settles", self.store.state.generation)
            return None
        return self.refresh(make_build())

    def refresh(self, build: Callable[[], DisplayRecord]) -> int:
        gen = self.store.begin_cycle()

        def task():
            try:
                record = build()
            except Exception as exc:
                LOGGER.warning("Fetch cycle gen=%s failed: %s", gen, exc)
                LOGGER.debug("%s", traceback.format_exc())
                self.dispatch(lambda err=exc: self._settle(self.store.fail, gen, err))
                return
            self.dispatch(lambda: self._settle(self.store.publish, gen, record))

        self.spawn(task)
        return gen

    def _settle(self, apply, gen: int, result) -> None:
        apply(gen, result)
        if self._held is None or self.store.state.busy:
            return
        make_build, self._held = self._held, None
        LOGGER.debug("Starting held refresh after gen=%s", gen)
        self.refresh(make_build())
