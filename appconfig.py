import json
import logging
import os
import shutil
import sys
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Optional, Tuple


# =========================
# Paths / Config
# =========================
APP_NAME = "DexRoll"
APP_VERSION = "1.0.0"
LOGGER = logging.getLogger("dexroll")

POKEAPI_BASE_URL = "https://pokeapi.co/api/v2"
NIKKE_API_BASE_URL = "https://nikke-api.vercel.app"

POKEMON_ID_MIN = 1
POKEMON_ID_MAX = 898
NIKKE_INITIAL_NAME = "anis"

REQUEST_TIMEOUT_SEC = 15
STAT_CHART_MAX = 150

CATALOGS = ("pokemon", "nikke")
UI_LANGUAGES = ("ja", "en")
NAME_LANGUAGES = ("ja-Hrkt", "ja", "roomaji", "en", "ko", "zh-Hans", "zh-Hant", "fr", "de", "es", "it")
INSTALLED_LOCALES_SUBDIR = Path("share") / "dexroll" / "locales"


def setup_logging(level: int = logging.DEBUG) -> None:
    if LOGGER.handlers or logging.getLogger().handlers:
        return
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


@dataclass(frozen=True)
class AppPaths:
    runtime_base: Path
    user_base: Path
    runtime_locales_dir: Path
    user_cache_dir: Path
    user_config_dir: Path
    user_sprite_cache_dir: Path
    user_locales_dir: Path
    config_path: Path


def get_runtime_base_dir() -> Path:
    if getattr(sys, "frozen", False):
        meipass = getattr(sys, "_MEIPASS", None)
        if meipass:
            return Path(meipass).resolve()
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parent


def get_user_base_dir() -> Path:
    base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
    if base:
        return Path(base) / APP_NAME
    return Path.home() / "AppData" / "Local" / APP_NAME


def find_runtime_locales_dir(runtime_base: Path) -> Path:
    # Non-editable installs put the tables under <prefix>/share/dexroll/locales.
    bundled = runtime_base / "locales"
    if bundled.is_dir():
        return bundled
    installed = Path(sys.prefix) / INSTALLED_LOCALES_SUBDIR
    if installed.is_dir():
        return installed
    return bundled


def build_app_paths(runtime_base: Optional[Path] = None, user_base: Optional[Path] = None) -> AppPaths:
    runtime_base = runtime_base or get_runtime_base_dir()
    user_base = user_base or get_user_base_dir()
    user_cache_dir = user_base / "cache"
    user_config_dir = user_base / "config"
    return AppPaths(
        runtime_base=runtime_base,
        user_base=user_base,
        runtime_locales_dir=find_runtime_locales_dir(runtime_base),
        user_cache_dir=user_cache_dir,
        user_config_dir=user_config_dir,
        user_sprite_cache_dir=user_cache_dir / "sprites",
        user_locales_dir=user_base / "locales",
        config_path=user_config_dir / "ui.json",
    )


def ensure_user_dirs(paths: AppPaths) -> None:
    for p in (
        paths.user_base,
        paths.user_cache_dir,
        paths.user_config_dir,
        paths.user_sprite_cache_dir,
        paths.user_locales_dir,
    ):
        p.mkdir(parents=True, exist_ok=True)

    # Seed user locale overrides from the bundled tables.
    if paths.runtime_locales_dir.exists():
        for src in paths.runtime_locales_dir.glob("*.json"):
            dst = paths.user_locales_dir / src.name
            if dst.exists():
                continue
            try:
                shutil.copy2(src, dst)
            except OSError as exc:
                LOGGER.debug("Cannot copy %s -> %s: %s", src, dst, exc)

    LOGGER.debug("runtime_base=%s user_base=%s", paths.runtime_base, paths.user_base)


# =========================
# UI config (ui.json)
# =========================
@dataclass
class UIConfig:
    language: str = "ja"
    name_language: str = "ja-Hrkt"
    catalog: str = "pokemon"
    mode: str = "dark"  # dark | light


class UIConfigStore:
    def __init__(self, config_path: Path):
        self.config_path = Path(config_path)

    def load(self) -> UIConfig:
        if not self.config_path.exists():
            cfg = UIConfig()
            self.save(cfg)
            return cfg
        try:
            with open(self.config_path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            LOGGER.debug("Invalid UI config at %s: %s", self.config_path, exc)
            return UIConfig()
        if not isinstance(data, dict):
            return UIConfig()

        defaults = UIConfig()
        language = str(data.get("language", defaults.language)).strip().lower()
        if language not in UI_LANGUAGES:
            language = defaults.language
        # Language tags are matched case-sensitively, so they are kept verbatim.
        name_language = str(data.get("name_language", defaults.name_language)).strip()
        if not name_language:
            name_language = defaults.name_language
        catalog = str(data.get("catalog", defaults.catalog)).strip().lower()
        if catalog not in CATALOGS:
            catalog = defaults.catalog
        mode = str(data.get("mode", defaults.mode)).strip().lower()
        if mode not in ("dark", "light"):
            mode = defaults.mode
        return UIConfig(language=language, name_language=name_language, catalog=catalog, mode=mode)

    def save(self, cfg: UIConfig) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(asdict(cfg), f, ensure_ascii=False, indent=2)


# =========================
# i18n
# =========================
class I18nManager:
    SUPPORTED = UI_LANGUAGES

    def __init__(self, user_locales_dir: Path, runtime_locales_dir: Path):
        self.user_locales_dir = Path(user_locales_dir)
        self.runtime_locales_dir = Path(runtime_locales_dir)
        self._cache: Dict[str, Dict[str, str]] = {}

    def _load_lang(self, lang: str) -> Dict[str, str]:
        if lang in self._cache:
            return self._cache[lang]
        for base in (self.user_locales_dir, self.runtime_locales_dir):
            path = base / f"{lang}.json"
            if not path.exists():
                continue
            try:
                with open(path, "r", encoding="utf-8-sig") as f:
                    data = json.load(f)
                flat = {str(k): str(v) for k, v in (data or {}).items()}
                self._cache[lang] = flat
                return flat
            except (OSError, ValueError, AttributeError) as exc:
                LOGGER.debug("Invalid locale file %s: %s", path, exc)
        self._cache[lang] = {}
        return self._cache[lang]

    def t(self, lang: str, key: str, **kwargs) -> str:
        primary = self._load_lang(lang).get(key, "")
        if not primary:
            primary = self._load_lang("en").get(key, key)
        try:
            return primary.format(**kwargs)
        except (KeyError, IndexError, ValueError):
            return primary

    def catalog_labels(self, lang: str) -> Dict[str, str]:
        return {catalog: self.t(lang, f"catalog.{catalog}") for catalog in CATALOGS}

    def catalog_from_label(self, lang: str, label: str) -> Optional[str]:
        label = label.strip()
        for catalog, text in self.catalog_labels(lang).items():
            if label in (text, catalog):
                return catalog
        return None


# =========================
# Theme
# =========================
BASE_TONES = ("#0B1F3A", "#1E3A5F", "#2E5D8A", "#75AADB", "#E2F0FF")


class ThemeManager:
    @staticmethod
    def _hex_to_rgb(color: str) -> Tuple[int, int, int]:
        c = color.lstrip("#")
        return int(c[0:2], 16), int(c[2:4], 16), int(c[4:6], 16)

    @staticmethod
    def _rgb_to_hex(rgb: Tuple[int, int, int]) -> str:
        r, g, b = rgb
        return f"#{max(0,min(255,r)):02X}{max(0,min(255,g)):02X}{max(0,min(255,b)):02X}"

    @classmethod
    def mix(cls, c1: str, c2: str, ratio: float) -> str:
        r1, g1, b1 = cls._hex_to_rgb(c1)
        r2, g2, b2 = cls._hex_to_rgb(c2)
        r = int(r1 * (1.0 - ratio) + r2 * ratio)
        g = int(g1 * (1.0 - ratio) + g2 * ratio)
        b = int(b1 * (1.0 - ratio) + b2 * ratio)
        return cls._rgb_to_hex((r, g, b))

    @classmethod
    def build_theme(cls, mode: str) -> Dict[str, str]:
        t1, t2, t3, t4, t5 = BASE_TONES
        if mode == "dark":
            bg = cls.mix("#0B0F16", t1, 0.24)
            panel = cls.mix("#121A26", t2, 0.26)
            panel_alt = cls.mix("#162131", t3, 0.26)
            fg = "#EDF3FB"
            muted = cls.mix("#B7C2D2", t4, 0.20)
            border = cls.mix("#44556B", t3, 0.30)
            accent = cls.mix(cls.mix(t3, t4, 0.55), "#E6EEF9", 0.20)
        else:
            bg = cls.mix("#F0F4FA", t5, 0.26)
            panel = cls.mix("#E7EDF6", t4, 0.30)
            panel_alt = cls.mix("#DEE6F2", t3, 0.24)
            fg = "#13243A"
            muted = cls.mix("#5A6C84", t2, 0.14)
            border = cls.mix("#A9B9CD", t3, 0.30)
            accent = cls.mix(cls.mix(t2, t3, 0.48), "#1B3858", 0.20)

        return {
            "bg": bg,
            "panel": panel,
            "panel_alt": panel_alt,
            "fg": fg,
            "muted": muted,
            "border": border,
            "accent": accent,
            "text_box_bg": cls.mix(panel, bg, 0.46),
            "chart_bg": cls.mix(bg, "#070A0F", 0.38) if mode == "dark" else cls.mix("#F4F8FF", t5, 0.22),
            "chart_grid": border,
            "chart_fill": "#FF6384",
            "chart_line": "#FF6384",
            "chart_text": fg,
        }
