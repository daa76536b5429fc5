import logging
import threading
from typing import Callable, Optional

import tkinter as tk
import tkinter.font as tkfont
from tkinter import ttk

try:
    import customtkinter as ctk
    HAS_CTK = True
except Exception:
    ctk = None
    HAS_CTK = False

from PIL import Image, ImageTk

from appconfig import (
    APP_VERSION,
    NAME_LANGUAGES,
    NIKKE_API_BASE_URL,
    NIKKE_INITIAL_NAME,
    POKEAPI_BASE_URL,
    UI_LANGUAGES,
    I18nManager,
    ThemeManager,
    UIConfigStore,
    build_app_paths,
    ensure_user_dirs,
    setup_logging,
)
from catalog import CatalogClient, SpriteService
from chart import build_chart_dataset, render_radar_chart
from pipeline import DisplayRecord, NikkePipeline, PokemonPipeline, RecordRefresher, ViewState, ViewStore


LOGGER = logging.getLogger("dexroll.app")
setup_logging()

APP_PATHS = build_app_paths()
ensure_user_dirs(APP_PATHS)

SPRITE_SIZE = (192, 192)
CHART_SIZE = (380, 380)


# =========================
# App
# =========================
BaseTkApp = ctk.CTk if HAS_CTK else tk.Tk


class App(BaseTkApp):
    def __init__(self):
        super().__init__()
        self._use_ctk = bool(HAS_CTK)
        if not self._use_ctk:
            LOGGER.warning("customtkinter not installed. Falling back to Tk widgets.")
        self.cfg_store = UIConfigStore(APP_PATHS.config_path)
        self.ui_cfg = self.cfg_store.load()
        self.i18n = I18nManager(APP_PATHS.user_locales_dir, APP_PATHS.runtime_locales_dir)
        self._lang = self.ui_cfg.language
        self._ui_font_family = self._resolve_ui_font_family(self._lang)
        self.theme = ThemeManager.build_theme(self.ui_cfg.mode)
        self.title(self.t("app.title", version=APP_VERSION))
        self.geometry("980x640")
        self.wm_minsize(820, 560)
        if self._use_ctk:
            ctk.set_appearance_mode("Dark" if self.ui_cfg.mode == "dark" else "Light")
            ctk.set_default_color_theme("blue")
            self.configure(fg_color=self.theme["bg"])
        else:
            self.configure(bg=self.theme["bg"])

        self.pokeapi = CatalogClient(POKEAPI_BASE_URL)
        self.nikke_api = CatalogClient(NIKKE_API_BASE_URL)
        self.sprites = SpriteService(str(APP_PATHS.user_sprite_cache_dir))
        self.store = ViewStore()
        self.refresher = RecordRefresher(self.store, dispatch=self._dispatch)
        self._unsubscribe = self.store.subscribe(self._on_state_changed)

        self.catalog_var = tk.StringVar(value=self.i18n.catalog_labels(self._lang)[self.ui_cfg.catalog])
        self.language_var = tk.StringVar(value=self._lang.upper())
        self.name_language_var = tk.StringVar(value=self.ui_cfg.name_language)
        self._title_var = tk.StringVar(value="—")
        self._status_var = tk.StringVar(value=f"v{APP_VERSION}")

        self._shown_record: Optional[DisplayRecord] = None
        self._render_generation_id: int = 0
        self._sprite_img: Optional[ImageTk.PhotoImage] = None
        self._chart_img: Optional[ImageTk.PhotoImage] = None

        self._setup_style()
        self._build_layout()
        self._render_empty()
        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self.after(0, lambda: self._refresh(initial=True))

    def t(self, key: str, **kwargs) -> str:
        return self.i18n.t(self._lang, key, **kwargs)

    def _dispatch(self, fn: Callable[[], None]) -> None:
        # Worker threads hand settlements back to the Tk loop.
        self.after(0, fn)

    def _resolve_ui_font_family(self, lang: str) -> str:
        if lang == "ja":
            preferred = ("Yu Gothic UI", "Meiryo UI", "Noto Sans CJK JP", "MS Gothic", "Segoe UI")
        else:
            preferred = ("Segoe UI", "Roboto", "Arial", "Yu Gothic UI")
        try:
            families = set(tkfont.families(self))
            for fam in preferred:
                if fam in families:
                    return fam
        except tk.TclError:
            pass
        return "Segoe UI"

    def _set_status(self, key_or_text: str, *, is_key: bool = False, **kwargs) -> None:
        text = self.t(key_or_text, **kwargs) if is_key else key_or_text
        self._status_var.set(text)

    # ---------- Styling ----------
    def _setup_style(self):
        style = ttk.Style(self)
        base_font = self._ui_font_family
        try:
            style.theme_use("clam")
        except tk.TclError:
            pass
        style.configure(".", background=self.theme["bg"], foreground=self.theme["fg"], fieldbackground=self.theme["panel"], font=(base_font, 10))
        style.configure("Panel.TFrame", background=self.theme["panel"])
        style.configure("Toolbar.TFrame", background=self.theme["panel_alt"])
        style.configure("Header.TLabel", background=self.theme["panel"], foreground=self.theme["accent"], font=(base_font, 18, "bold"))
        style.configure("Muted.TLabel", background=self.theme["panel"], foreground=self.theme["muted"], font=(base_font, 9, "italic"))
        style.configure("Toolbar.TButton", padding=(12, 6), font=(base_font, 10, "bold"))
        style.map(
            "Toolbar.TButton",
            background=[("active", self.theme["accent"]), ("pressed", self.theme["border"])],
            foreground=[("active", self.theme["fg"])],
        )
        style.configure(
            "Catalog.TCombobox",
            fieldbackground=self.theme["text_box_bg"],
            foreground=self.theme["fg"],
            background=self.theme["panel"],
            arrowcolor=self.theme["fg"],
            bordercolor=self.theme["border"],
        )

    def _button(self, parent, text: str, command, width: int = 120):
        if self._use_ctk:
            return ctk.CTkButton(parent, text=text, command=command, width=width)
        return ttk.Button(parent, text=text, style="Toolbar.TButton", command=command)

    def _label(self, parent, text: str = "", textvariable=None, header: bool = False):
        if self._use_ctk:
            kwargs = {"anchor": "w", "justify": "left"}
            if header:
                kwargs.update(font=(self._ui_font_family, 22, "bold"), text_color=self.theme["accent"])
            if textvariable is not None:
                return ctk.CTkLabel(parent, textvariable=textvariable, **kwargs)
            return ctk.CTkLabel(parent, text=text, **kwargs)
        style = "Header.TLabel" if header else "Muted.TLabel"
        if textvariable is not None:
            return ttk.Label(parent, textvariable=textvariable, style=style)
        return ttk.Label(parent, text=text, style=style)

    def _combo(self, parent, variable: tk.StringVar, values, on_select, width: int = 110):
        if self._use_ctk:
            return ctk.CTkComboBox(parent, variable=variable, values=list(values), width=width, command=lambda _v: on_select())
        combo = ttk.Combobox(parent, textvariable=variable, values=list(values), state="readonly", width=max(6, width // 12), style="Catalog.TCombobox")
        combo.bind("<<ComboboxSelected>>", lambda _e: on_select())
        return combo

    def _text_box(self, parent, height: int):
        if self._use_ctk:
            return ctk.CTkTextbox(parent, height=height * 20, wrap="word")
        return tk.Text(
            parent, height=height, wrap="word",
            bg=self.theme["text_box_bg"], fg=self.theme["fg"],
            insertbackground=self.theme["fg"],
            highlightthickness=1, highlightbackground=self.theme["border"],
        )

    # ---------- Layout ----------
    def _build_layout(self):
        if self._use_ctk:
            root = ctk.CTkFrame(self, fg_color=self.theme["panel"], corner_radius=10)
        else:
            root = ttk.Frame(self, style="Panel.TFrame")
        root.pack(fill="both", expand=True, padx=12, pady=12)
        root.columnconfigure(0, weight=1)
        root.rowconfigure(1, weight=1)

        if self._use_ctk:
            self.toolbar = ctk.CTkFrame(root, fg_color=self.theme["panel_alt"], corner_radius=8)
        else:
            self.toolbar = ttk.Frame(root, style="Toolbar.TFrame")
        self.toolbar.grid(row=0, column=0, sticky="ew", pady=(0, 8))
        self.toolbar.columnconfigure(1, weight=1)

        self.refresh_btn = self._button(self.toolbar, self._refresh_label(), self._refresh, width=220)
        self.refresh_btn.grid(row=0, column=0, padx=(8, 6), pady=8, sticky="w")

        self.catalog_label = self._label(self.toolbar, self.t("toolbar.catalog"))
        self.catalog_label.grid(row=0, column=2, padx=(0, 6), sticky="e")
        self.catalog_combo = self._combo(self.toolbar, self.catalog_var, self.i18n.catalog_labels(self._lang).values(), self._on_catalog_selected)
        self.catalog_combo.grid(row=0, column=3, padx=(0, 10), pady=8, sticky="e")

        self.name_language_label = self._label(self.toolbar, self.t("toolbar.name_language"))
        self.name_language_label.grid(row=0, column=4, padx=(0, 6), sticky="e")
        self.name_language_combo = self._combo(self.toolbar, self.name_language_var, NAME_LANGUAGES, self._on_name_language_selected)
        self.name_language_combo.grid(row=0, column=5, padx=(0, 10), pady=8, sticky="e")

        self.lang_label = self._label(self.toolbar, self.t("toolbar.language"))
        self.lang_label.grid(row=0, column=6, padx=(0, 6), sticky="e")
        self.language_combo = self._combo(self.toolbar, self.language_var, [x.upper() for x in UI_LANGUAGES], self._on_language_selected, width=70)
        self.language_combo.grid(row=0, column=7, padx=(0, 10), pady=8, sticky="e")

        self.mode_btn = self._button(self.toolbar, self._mode_label(), self._toggle_theme_mode)
        self.mode_btn.grid(row=0, column=8, padx=(0, 8), pady=8, sticky="e")

        if self._use_ctk:
            main = ctk.CTkFrame(root, fg_color=self.theme["panel"], corner_radius=0)
        else:
            main = ttk.Frame(root, style="Panel.TFrame")
        main.grid(row=1, column=0, sticky="nsew")
        main.columnconfigure(0, weight=1)
        main.columnconfigure(1, weight=1)
        main.rowconfigure(0, weight=1)

        if self._use_ctk:
            self.info_panel = ctk.CTkFrame(main, fg_color=self.theme["panel"], corner_radius=8)
            self.chart_panel = ctk.CTkFrame(main, fg_color=self.theme["panel"], corner_radius=8)
        else:
            self.info_panel = ttk.Frame(main, style="Panel.TFrame")
            self.chart_panel = ttk.Frame(main, style="Panel.TFrame")
        self.info_panel.grid(row=0, column=0, sticky="nsew", padx=(0, 10))
        self.chart_panel.grid(row=0, column=1, sticky="nsew")
        self._build_info_panel()
        self._build_chart_panel()

        self.status_label = self._label(root, textvariable=self._status_var)
        self.status_label.grid(row=2, column=0, sticky="ew", pady=(6, 0), padx=(2, 2))

    def _build_info_panel(self):
        p = self.info_panel
        p.columnconfigure(0, weight=1)
        p.rowconfigure(2, weight=1)
        self.title_label = self._label(p, textvariable=self._title_var, header=True)
        self.title_label.grid(row=0, column=0, sticky="w", padx=12, pady=(12, 6))
        self.sprite_label = tk.Label(p, bg=self.theme["panel"], bd=0, highlightthickness=0)
        self.sprite_label.grid(row=1, column=0, sticky="w", padx=12)
        self.info_box = self._text_box(p, height=14)
        self.info_box.grid(row=2, column=0, sticky="nsew", padx=12, pady=(6, 12))

    def _build_chart_panel(self):
        p = self.chart_panel
        p.columnconfigure(0, weight=1)
        p.rowconfigure(1, weight=1)
        self.chart_header = self._label(p, self.t("chart.title"), header=True)
        self.chart_header.grid(row=0, column=0, sticky="w", padx=12, pady=(12, 6))
        self.chart_label = tk.Label(p, bg=self.theme["panel"], fg=self.theme["muted"], bd=0, highlightthickness=0)
        self.chart_label.grid(row=1, column=0, sticky="n", padx=12, pady=(0, 12))

    def _refresh_label(self) -> str:
        if self.store.state.busy:
            return self.t("toolbar.loading")
        return self.t(f"toolbar.refresh.{self.ui_cfg.catalog}")

    def _mode_label(self) -> str:
        return self.t("toolbar.mode", mode=("Dark" if self.ui_cfg.mode == "dark" else "Light"))

    # ---------- Toolbar actions ----------
    def _save_cfg(self) -> None:
        try:
            self.cfg_store.save(self.ui_cfg)
        except OSError as exc:
            LOGGER.debug("Cannot save UI config: %s", exc)

    def _on_catalog_selected(self):
        catalog = self.i18n.catalog_from_label(self._lang, self.catalog_var.get())
        if catalog is None or catalog == self.ui_cfg.catalog:
            return
        self.ui_cfg.catalog = catalog
        self._save_cfg()
        self._refresh(initial=True)

    def _on_name_language_selected(self):
        tag = self.name_language_var.get().strip()
        if not tag or tag == self.ui_cfg.name_language:
            return
        self.ui_cfg.name_language = tag
        self._save_cfg()
        if self.ui_cfg.catalog == "pokemon":
            self._refresh()

    def _on_language_selected(self):
        lang = self.language_var.get().strip().lower()
        if lang not in UI_LANGUAGES or lang == self._lang:
            return
        self._lang = lang
        self.ui_cfg.language = lang
        self._save_cfg()
        self._apply_language()

    def _toggle_theme_mode(self):
        self.ui_cfg.mode = "light" if self.ui_cfg.mode == "dark" else "dark"
        self._save_cfg()
        self.theme = ThemeManager.build_theme(self.ui_cfg.mode)
        if self._use_ctk:
            ctk.set_appearance_mode("Dark" if self.ui_cfg.mode == "dark" else "Light")
            self.configure(fg_color=self.theme["bg"])
        else:
            self.configure(bg=self.theme["bg"])
        self._setup_style()
        for lbl in (self.sprite_label, self.chart_label):
            lbl.configure(bg=self.theme["panel"])
        if not self._use_ctk:
            self.info_box.configure(bg=self.theme["text_box_bg"], fg=self.theme["fg"], highlightbackground=self.theme["border"])
        self.mode_btn.configure(text=self._mode_label())
        if self._shown_record is not None:
            self._render_chart(self._shown_record)

    def _apply_language(self):
        self.title(self.t("app.title", version=APP_VERSION))
        self.catalog_label.configure(text=self.t("toolbar.catalog"))
        labels = self.i18n.catalog_labels(self._lang)
        self.catalog_combo.configure(values=list(labels.values()))
        self.catalog_var.set(labels[self.ui_cfg.catalog])
        self.name_language_label.configure(text=self.t("toolbar.name_language"))
        self.lang_label.configure(text=self.t("toolbar.language"))
        self.mode_btn.configure(text=self._mode_label())
        self.chart_header.configure(text=self.t("chart.title"))
        self.refresh_btn.configure(text=self._refresh_label())
        if self._shown_record is not None:
            self._render_info(self._shown_record)
        else:
            self._render_empty()

    # ---------- Fetch cycle ----------
    def _refresh(self, initial: bool = False):
        # Selector changes made mid-fetch are held and applied once the cycle settles.
        self.refresher.request(lambda: self._make_build(initial))

    def _make_build(self, initial: bool) -> Callable[[], DisplayRecord]:
        if self.ui_cfg.catalog == "nikke":
            nikke = NikkePipeline(self.nikke_api)
            if initial:
                return lambda: nikke.build_display_record(NIKKE_INITIAL_NAME)
            return nikke.build_display_record
        return PokemonPipeline(self.pokeapi, language=self.ui_cfg.name_language).build_display_record

    def _on_state_changed(self, state: ViewState):
        busy = state.busy
        self.refresh_btn.configure(state="disabled" if busy else "normal", text=self._refresh_label())
        if busy:
            self._set_status("status.loading", is_key=True, generation=state.generation)
            return
        if state.error:
            self._set_status("status.failed_keep_previous", is_key=True, err=state.error)
            return
        if state.record is not None and state.record is not self._shown_record:
            self._render_record(state.record)

    # ---------- Rendering ----------
    def _render_empty(self):
        self._title_var.set("—")
        self._set_text(self.info_box, "")
        self._show_placeholder_sprite()
        self._chart_img = None
        self.chart_label.configure(image="", text=self.t("chart.empty"))
        self._set_status("status.empty", is_key=True)

    def _render_record(self, record: DisplayRecord):
        self._shown_record = record
        self._render_generation_id += 1
        self._render_info(record)
        self._render_chart(record)
        self._load_sprite_async(record, self._render_generation_id)
        self._set_status("status.ready", is_key=True, title=record.title)

    def _render_info(self, record: DisplayRecord):
        self._title_var.set(record.title)
        lines = [f"{self.t(label)}: {value}" for label, value in record.facts]
        for section in record.sections:
            lines.append("")
            lines.append(f"{self.t(section.label_key)}:")
            for entry in section.entries:
                text = entry.name if not entry.is_fallback else f"{entry.name} ({entry.key})"
                if entry.description:
                    text = f"{text}: {entry.description}"
                lines.append(f"  • {text}")
        self._set_text(self.info_box, "\n".join(lines))

    def _render_chart(self, record: DisplayRecord):
        dataset = build_chart_dataset(record)
        # Drop the previous chart before drawing a new one.
        self._chart_img = None
        if not dataset.values:
            self.chart_label.configure(image="", text=self.t("chart.empty"))
            return
        img = render_radar_chart(dataset, size=CHART_SIZE, colors=self.theme)
        self._chart_img = ImageTk.PhotoImage(img)
        self.chart_label.configure(image=self._chart_img, text="")

    def _show_placeholder_sprite(self):
        self._set_sprite(self.sprites.placeholder())

    def _set_sprite(self, img: Image.Image):
        img = img.copy()
        img.thumbnail(SPRITE_SIZE, Image.LANCZOS)
        self._sprite_img = ImageTk.PhotoImage(img)
        self.sprite_label.configure(image=self._sprite_img)

    def _load_sprite_async(self, record: DisplayRecord, render_gen: int):
        def task():
            img = self.sprites.get_image(record.image_url)

            def apply():
                if render_gen != self._render_generation_id:
                    LOGGER.debug("Skipping stale sprite: gen=%s current=%s", render_gen, self._render_generation_id)
                    return
                self._set_sprite(img)
            self.after(0, apply)
        threading.Thread(target=task, daemon=True).start()

    @staticmethod
    def _set_text(box, text: str):
        box.configure(state="normal")
        box.delete("1.0", "end")
        box.insert("end", text)
        box.configure(state="disabled")

    def _on_close(self):
        self._unsubscribe()
        self.destroy()


if __name__ == "__main__":
    from launcher import main

    main()
