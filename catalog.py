"""
Remote catalog access: HTTP client, response schemas, localized-name lookup
and the sprite download cache.

PokeAPI payloads look like:
{
  "id": 25, "name": "pikachu", "height": 4, "weight": 60,
  "sprites": {"front_default": "https://..."},
  "species": {"name": "pikachu", "url": "https://pokeapi.co/api/v2/pokemon-species/25/"},
  "abilities": [{"ability": {"name": "static", "url": "..."}, "is_hidden": false, "slot": 1}],
  "types": [{"slot": 1, "type": {"name": "electric", "url": "..."}}],
  "stats": [{"base_stat": 35, "stat": {"name": "hp"}}]
}
Species, ability and type resources all carry
"names": [{"name": "ピカチュウ", "language": {"name": "ja-Hrkt"}}, ...].
"""
import hashlib
import logging
import os
from dataclasses import dataclass
from io import BytesIO
from typing import Any, List, Optional, Type, TypeVar
from urllib.parse import quote

import requests
from PIL import Image
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from appconfig import REQUEST_TIMEOUT_SEC

LOGGER = logging.getLogger("dexroll.catalog")

FALLBACK_NAME = "N/A"


# =========================
# Errors
# =========================
class CatalogError(RuntimeError):
    """Base class for failures that abort a fetch cycle."""


class CatalogTransportError(CatalogError):
    """Raised when the request never produced a response."""


class CatalogHTTPError(CatalogError):
    def __init__(self, status_code: int, url: str, detail: str = ""):
        self.status_code = status_code
        self.url = url
        msg = f"GET {url} failed with status {status_code}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class CatalogShapeError(CatalogError):
    """Raised when a response does not match the expected schema."""


# =========================
# Schemas
# =========================
class NamedRef(BaseModel):
    name: str
    url: str = ""


class NameEntry(BaseModel):
    name: str
    language: NamedRef


class NamedResource(BaseModel):
    name: str = ""
    names: List[NameEntry] = Field(default_factory=list)


class PokemonSprites(BaseModel):
    front_default: Optional[str] = None


class AbilitySlot(BaseModel):
    ability: NamedRef
    is_hidden: bool = False
    slot: int = 0


class TypeSlot(BaseModel):
    slot: int = 0
    type: NamedRef


class StatEntry(BaseModel):
    base_stat: int
    stat: NamedRef


class PokemonPayload(BaseModel):
    id: int
    name: str
    height: int
    weight: int
    sprites: PokemonSprites
    species: NamedRef
    abilities: List[AbilitySlot]
    types: List[TypeSlot]
    stats: List[StatEntry]


class NikkeSkill(BaseModel):
    name: str
    description: str = ""


class NikkeImages(BaseModel):
    icon: str = ""
    card: str = ""
    full: str = ""


class NikkePayload(BaseModel):
    name: str
    rarity: str
    element: str
    weapon: str
    class_: str = Field(alias="class")
    skills: List[NikkeSkill] = Field(default_factory=list)
    images: NikkeImages


class NikkeSummary(BaseModel):
    name: str


NIKKE_ROSTER = TypeAdapter(List[NikkeSummary])

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_payload(model: Type[ModelT], data: Any, source: str = "") -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise CatalogShapeError(f"Unexpected {model.__name__} shape from {source or 'response'}: {exc}") from exc


# =========================
# HTTP client
# =========================
class CatalogClient:
    """Read-only GET access to one catalog service. No retry, no caching."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT_SEC,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def record_url(self, resource_type: str, id_or_name: object) -> str:
        return f"{self.base_url}/{resource_type}/{quote(str(id_or_name), safe='')}"

    def get_record(self, resource_type: str, id_or_name: object) -> Any:
        return self.get_resource(self.record_url(resource_type, id_or_name))

    def get_collection(self, resource_type: str) -> Any:
        return self.get_resource(f"{self.base_url}/{resource_type}")

    def get_resource(self, url: str) -> Any:
        if not url:
            raise CatalogShapeError("Empty resource URL")
        try:
            r = self.session.get(url, headers={"Accept": "application/json"}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise CatalogTransportError(f"GET {url} failed: {exc}") from exc
        if not r.ok:
            LOGGER.debug("HTTP %s for %s", r.status_code, url)
            raise CatalogHTTPError(r.status_code, url, (r.text or "").strip()[:200])
        try:
            return r.json()
        except ValueError as exc:
            raise CatalogShapeError(f"GET {url} did not return JSON: {exc}") from exc


def fetch_pokemon(client: CatalogClient, pokemon_id: int) -> PokemonPayload:
    return parse_payload(PokemonPayload, client.get_record("pokemon", pokemon_id), source=f"pokemon/{pokemon_id}")


def fetch_nikke(client: CatalogClient, name: str) -> NikkePayload:
    return parse_payload(NikkePayload, client.get_record("characters", name), source=f"characters/{name}")


def fetch_nikke_roster(client: CatalogClient) -> List[str]:
    data = client.get_collection("characters")
    try:
        rows = NIKKE_ROSTER.validate_python(data)
    except ValidationError as exc:
        raise CatalogShapeError(f"Unexpected roster shape from characters: {exc}") from exc
    return [row.name for row in rows if row.name]


# =========================
# Localization
# =========================
@dataclass(frozen=True)
class LocalizedName:
    key: str
    name: str
    language: str
    description: str = ""

    @property
    def is_fallback(self) -> bool:
        return self.name == FALLBACK_NAME


def localized_name_from_payload(payload: NamedResource, language: str) -> str:
    # Exact, case-sensitive tag match; first hit wins.
    for entry in payload.names:
        if entry.language.name == language:
            return entry.name
    return FALLBACK_NAME


def resolve_localized_name(client: CatalogClient, resource_url: str, language: str, key: str = "") -> LocalizedName:
    payload = parse_payload(NamedResource, client.get_resource(resource_url), source=resource_url)
    return LocalizedName(
        key=key or payload.name,
        name=localized_name_from_payload(payload, language),
        language=language,
    )


# =========================
# Sprite service (download + disk cache)
# =========================
class SpriteService:
    PLACEHOLDER_SIZE = (96, 96)

    def __init__(self, cache_dir: str, session: Optional[requests.Session] = None, timeout: float = 20):
        self.cache_dir = str(cache_dir)
        self.session = session or requests.Session()
        self.timeout = timeout

    def _cache_path(self, url: str) -> str:
        ext = os.path.splitext(url.split("?", 1)[0])[1].lower()
        if ext not in (".png", ".jpg", ".jpeg", ".webp", ".gif"):
            ext = ".img"
        return os.path.join(self.cache_dir, hashlib.sha1(url.encode("utf-8")).hexdigest() + ext)

    def placeholder(self) -> Image.Image:
        return Image.new("RGBA", self.PLACEHOLDER_SIZE, (25, 25, 30, 255))

    def get_image(self, url: str) -> Image.Image:
        if not url:
            return self.placeholder()
        cached = self._cache_path(url)
        if os.path.exists(cached):
            try:
                with Image.open(cached) as img:
                    return img.convert("RGBA")
            except OSError as exc:
                LOGGER.debug("Invalid cached sprite %s: %s", cached, exc)
        try:
            r = self.session.get(url, timeout=self.timeout)
            r.raise_for_status()
            img = Image.open(BytesIO(r.content)).convert("RGBA")
        except (requests.RequestException, OSError) as exc:
            LOGGER.warning("Failed to download sprite from %s: %s", url, exc)
            return self.placeholder()
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            with open(cached, "wb") as f:
                f.write(r.content)
        except OSError as exc:
            LOGGER.debug("Cannot write sprite cache %s: %s", cached, exc)
        return img
