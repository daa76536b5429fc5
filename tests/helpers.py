"""Shared fakes for the catalog and pipeline tests."""

import threading
from typing import Any, Dict, List
from unittest.mock import MagicMock

import requests


POKEAPI = "https://pokeapi.co/api/v2"
NIKKE = "https://nikke-api.vercel.app"


def make_response(payload: Any = None, status: int = 200, text: str = ""):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


class FakeSession:
    """Maps URL -> payload, Exception to raise, or (status, text) tuple."""

    def __init__(self, routes: Dict[str, Any]):
        self.routes = dict(routes)
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def get(self, url, headers=None, timeout=None):
        with self._lock:
            self.calls.append(url)
        if url not in self.routes:
            return make_response(None, status=404, text="Not Found")
        value = self.routes[url]
        if isinstance(value, requests.RequestException):
            raise value
        if isinstance(value, tuple):
            status, text = value
            return make_response(None, status=status, text=text)
        return make_response(value)


def named_resource(name: str, names: Dict[str, str]) -> dict:
    return {
        "id": 1,
        "name": name,
        "names": [{"name": v, "language": {"name": k, "url": f"{POKEAPI}/language/{k}/"}} for k, v in names.items()],
    }


def pokemon_payload(pid: int = 25) -> dict:
    return {
        "id": pid,
        "name": "pikachu",
        "height": 4,
        "weight": 60,
        "base_experience": 112,
        "sprites": {"front_default": f"https://raw.example/sprites/{pid}.png"},
        "species": {"name": "pikachu", "url": f"{POKEAPI}/pokemon-species/{pid}/"},
        "abilities": [
            {"ability": {"name": "static", "url": f"{POKEAPI}/ability/9/"}, "is_hidden": False, "slot": 1},
            {"ability": {"name": "lightning-rod", "url": f"{POKEAPI}/ability/31/"}, "is_hidden": True, "slot": 3},
        ],
        "types": [{"slot": 1, "type": {"name": "electric", "url": f"{POKEAPI}/type/13/"}}],
        "stats": [
            {"base_stat": 35, "effort": 0, "stat": {"name": "hp", "url": f"{POKEAPI}/stat/1/"}},
            {"base_stat": 55, "effort": 0, "stat": {"name": "attack", "url": f"{POKEAPI}/stat/2/"}},
            {"base_stat": 40, "effort": 0, "stat": {"name": "defense", "url": f"{POKEAPI}/stat/3/"}},
            {"base_stat": 50, "effort": 0, "stat": {"name": "special-attack", "url": f"{POKEAPI}/stat/4/"}},
            {"base_stat": 50, "effort": 0, "stat": {"name": "special-defense", "url": f"{POKEAPI}/stat/5/"}},
            {"base_stat": 90, "effort": 2, "stat": {"name": "speed", "url": f"{POKEAPI}/stat/6/"}},
        ],
    }


def pokeapi_routes(pid: int = 25) -> Dict[str, Any]:
    return {
        f"{POKEAPI}/pokemon/{pid}": pokemon_payload(pid),
        f"{POKEAPI}/pokemon-species/{pid}/": named_resource("pikachu", {"ja-Hrkt": "ピカチュウ", "en": "Pikachu"}),
        f"{POKEAPI}/ability/9/": named_resource("static", {"ja-Hrkt": "せいでんき", "en": "Static"}),
        f"{POKEAPI}/ability/31/": named_resource("lightning-rod", {"en": "Lightning Rod"}),
        f"{POKEAPI}/type/13/": named_resource("electric", {"ja-Hrkt": "でんき", "en": "Electric"}),
    }


def nikke_payload(name: str = "anis") -> dict:
    return {
        "name": name,
        "rarity": "SR",
        "element": "Electric",
        "weapon": "RL",
        "class": "Supporter",
        "skills": [
            {"name": "Sparkling Summer", "description": "Increases ATK."},
            {"name": "Cocktail Bomb", "description": "Deals damage."},
        ],
        "images": {"icon": "https://img.example/icon.png", "card": "https://img.example/card.png", "full": f"https://img.example/{name}.png"},
    }


