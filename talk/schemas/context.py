"""Snapshot of the user's frontmost application, captured once per run."""

from pydantic import BaseModel, ConfigDict

BROWSER_BUNDLE_IDS: frozenset[str] = frozenset({
    "com.apple.Safari",
    "com.google.Chrome",
    "com.brave.Browser",
    "org.mozilla.firefox",
    "com.microsoft.edgemac",
    "com.vivaldi.Vivaldi",
    "company.thebrowser.Browser",  # Arc
})

EMAIL_BUNDLE_IDS: frozenset[str] = frozenset({
    "com.apple.mail",
    "com.microsoft.Outlook",
    "com.readdle.smartemail-macos",  # Spark
})

MESSAGING_BUNDLE_IDS: frozenset[str] = frozenset({
    "com.apple.MobileSMS",
    "com.tinyspeck.slackmacgap",
    "ru.keepcoder.Telegram",
    "com.hnc.Discord",
})

EDITABLE_ROLES = ("AXTextArea", "AXTextField")

SUMMARY_SELECTION_LIMIT = 200


class AppContext(BaseModel):
    """Read-only view of the active application.

    All app-kind checks are derived from ``bundle_identifier``; nothing
    about them is stored.
    """

    model_config = ConfigDict(frozen=True)

    bundle_identifier: str
    app_name: str
    window_title: str | None = None
    focused_element_role: str | None = None
    selected_text: str | None = None
    url: str | None = None

    @classmethod
    def empty(cls) -> "AppContext":
        """Context used when there is no frontmost app or no permission."""
        return cls(bundle_identifier="unknown", app_name="Unknown")

    @property
    def is_browser(self) -> bool:
        return self.bundle_identifier in BROWSER_BUNDLE_IDS

    @property
    def is_email_client(self) -> bool:
        return self.bundle_identifier in EMAIL_BUNDLE_IDS

    @property
    def is_messaging_app(self) -> bool:
        return self.bundle_identifier in MESSAGING_BUNDLE_IDS

    @property
    def has_editable_field(self) -> bool:
        return self.focused_element_role in EDITABLE_ROLES

    @property
    def prompt_summary(self) -> str:
        """Short context block for LLM prompts."""
        parts = [f"App: {self.app_name}"]
        if self.window_title:
            parts.append(f"Window: {self.window_title}")
        if self.selected_text:
            parts.append(f"Selected: {self.selected_text[:SUMMARY_SELECTION_LIMIT]}")
        if self.url:
            parts.append(f"URL: {self.url}")
        return "\n".join(parts)
