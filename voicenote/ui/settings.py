"""
Voice settings dialog using Flet.

API key, transcription model, and what to do with long recordings.
"""

from typing import List

import flet as ft

from ..config import Config
from ..providers.gemini import GEMINI_MODELS
from ..validate import KeyValidator, ValidationResult


API_KEY_URL = "https://aistudio.google.com/apikey"

MERGE_POLICY_HINTS = {
    "individual": "Recordings over 45 seconds will create multiple notes, one per segment.",
    "merged": "All segments will be merged into a single note with the full transcription.",
}


def model_description(model_id: str) -> str:
    """Description shown under the model dropdown."""
    for m in GEMINI_MODELS:
        if m["id"] == model_id:
            return m["description"]
    return ""


def settings_app(page: ft.Page) -> None:
    """Main settings app."""
    page.title = "Voice Settings"
    page.window.width = 520
    page.window.height = 560
    page.padding = 20
    page.bgcolor = "#111318"
    page.theme_mode = ft.ThemeMode.DARK

    # Colors
    ACCENT = "#3B82F6"
    BG_CARD = "#1a1d24"
    BORDER = "#2a2f3a"
    TEXT = "#e5e7eb"
    TEXT_DIM = "#9ca3af"
    SUCCESS = "#22c55e"
    ERROR = "#ef4444"

    config = Config.load()
    validator = KeyValidator()

    def on_window_close(e):
        if e.data == "close":
            validator.shutdown()
            page.window.destroy()

    page.window.on_event = on_window_close

    def snack(msg: str, color: str = ACCENT):
        page.snack_bar = ft.SnackBar(ft.Text(msg), bgcolor=color)
        page.snack_bar.open = True
        page.update()

    def card(title: str, content: List[ft.Control], subtitle: str = "") -> ft.Container:
        """Create a settings card."""
        return ft.Container(
            content=ft.Column([
                ft.Text(title, size=14, weight=ft.FontWeight.W_600, color=TEXT),
                ft.Text(subtitle, size=12, color=TEXT_DIM) if subtitle else ft.Container(),
                ft.Container(height=8),
                *content,
            ], spacing=4),
            bgcolor=BG_CARD,
            border=ft.border.all(1, BORDER),
            border_radius=8,
            padding=16,
            margin=ft.margin.only(bottom=12),
        )

    # ========== API key ==========

    key_status = ft.Text("", size=11, color=TEXT_DIM)

    def update_status(result: ValidationResult) -> None:
        if result.valid:
            key_status.value = f"✓ Valid ({result.latency_ms}ms)"
            key_status.color = SUCCESS
        elif result.error == "No key":
            key_status.value = ""
        else:
            key_status.value = f"✗ {result.error}"
            key_status.color = ERROR
        page.update()

    def check_key():
        key_status.value = "Testing..."
        key_status.color = TEXT_DIM
        page.update()
        validator.validate(api_key_field.value.strip(), update_status, model=model_dropdown.value)

    def on_key_change(e):
        check_key()

    api_key_field = ft.TextField(
        label="Gemini API Key",
        value=config.api_key or "",
        password=True,
        can_reveal_password=True,
        hint_text="Enter your API key",
        border_color=BORDER,
        bgcolor="#0d0f12",
        text_size=13,
        on_blur=on_key_change,
    )

    key_link = ft.TextButton(
        "Get an API key from Google AI Studio",
        url=API_KEY_URL,
    )

    # ========== Model ==========

    model_hint = ft.Text(model_description(config.model), size=12, color=TEXT_DIM)

    def on_model_change(e):
        model_hint.value = model_description(model_dropdown.value)
        page.update()
        # Model access is checked per key
        if api_key_field.value.strip():
            check_key()

    model_dropdown = ft.Dropdown(
        value=config.model,
        options=[ft.dropdown.Option(m["id"], m["name"]) for m in GEMINI_MODELS],
        width=320,
        border_color=BORDER,
        bgcolor="#0d0f12",
        text_size=13,
        on_change=on_model_change,
    )

    # ========== Long recordings ==========

    merge_hint = ft.Text(MERGE_POLICY_HINTS[config.merge_policy], size=12, color=TEXT_DIM)

    def on_merge_change(e):
        merge_hint.value = MERGE_POLICY_HINTS.get(merge_dropdown.value, "")
        page.update()

    merge_dropdown = ft.Dropdown(
        value=config.merge_policy,
        options=[
            ft.dropdown.Option("individual", "Create separate notes for each segment"),
            ft.dropdown.Option("merged", "Combine all text into one note"),
        ],
        width=320,
        border_color=BORDER,
        bgcolor="#0d0f12",
        text_size=13,
        on_change=on_merge_change,
    )

    # Validate existing key once the page is up
    if config.api_key:
        key_status.value = "Testing..."
        validator.validate(config.api_key, update_status, model=config.model)

    # ========== Actions ==========

    def save_all(_=None):
        try:
            key = api_key_field.value.strip()
            if key:
                config.set_api_key(key)
            else:
                config.clear_api_key()
            config.set_model(model_dropdown.value)
            config.set_merge_policy(merge_dropdown.value)

            config.save_settings()
            config.save_api_key()
            snack("Settings saved!", SUCCESS)

        except (OSError, ValueError) as e:
            snack(f"Error: {e}", ERROR)

    def close_window(_=None):
        page.window.close()

    save_btn = ft.ElevatedButton(
        "Save",
        icon=ft.Icons.SAVE,
        on_click=save_all,
        style=ft.ButtonStyle(bgcolor=ACCENT, color="white"),
    )

    close_btn = ft.TextButton(
        "Cancel",
        on_click=close_window,
    )

    # ========== Layout ==========

    page.add(
        ft.Row([
            ft.Icon(ft.Icons.MIC, color=ACCENT, size=24),
            ft.Text("Voice settings", size=18, weight=ft.FontWeight.W_600),
        ], spacing=10),
        ft.Container(height=8),
        ft.Column([
            card(
                "API Key",
                [
                    api_key_field,
                    ft.Container(key_status, padding=ft.padding.only(left=4, top=2)),
                    key_link,
                ],
                "Validated when you click away.",
            ),
            card("Model", [model_dropdown, model_hint]),
            card("Long recordings", [merge_dropdown, merge_hint]),
        ], scroll=ft.ScrollMode.AUTO, expand=True),
        ft.Divider(color=BORDER),
        ft.Row([close_btn, ft.Container(expand=True), save_btn]),
    )


def run_settings():
    """Run the settings app."""
    ft.app(target=settings_app)


if __name__ == "__main__":
    run_settings()
