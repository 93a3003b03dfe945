"""
Settings Window Module

PyQt6 dialog for the rewrite configuration. There is no Save button: every
edit is written through to the SettingsManager as it happens, and the
validity line at the bottom tracks the current values.
"""

import asyncio
import dataclasses
import logging
from typing import Optional, Set

from PyQt6.QtCore import Qt
from PyQt6.QtWidgets import (
    QCheckBox, QComboBox, QDialog, QFormLayout, QGroupBox, QHBoxLayout,
    QLabel, QLineEdit, QMessageBox, QPlainTextEdit, QPushButton, QScrollArea,
    QSizePolicy, QSpacerItem, QVBoxLayout, QWidget
)

from ..controllers.event_bus import EventBus
from ..models.openrouter_client import FREE_MODELS, PAID_MODELS
from ..models.settings_manager import RewriteSettings, SettingsManager
from .. import APP_NAME, HOTKEY_DESCRIPTION

logger = logging.getLogger(__name__)

API_KEY_HELP = "Get your API key from https://openrouter.ai/keys"
CUSTOM_MODEL_HELP = "Enter the exact model identifier from OpenRouter"
SYSTEM_PROMPT_HELP = "This prompt defines the AI's role and behavior when rewriting text."
USER_PROMPT_HELP = (
    "Use {text} as a placeholder for the clipboard content. "
    "This template will be sent to the AI with your text."
)
HOW_TO_USE_STEPS = (
    "1. Copy text to your clipboard",
    f"2. Press {HOTKEY_DESCRIPTION}",
    "3. The rewritten text will replace your clipboard content",
    "4. Paste the improved text wherever you need it",
)
VALID_TEXT = "✓ Configuration is valid"
INVALID_TEXT = "⚠ Please configure API key and model"


class SettingsWindow(QDialog):
    """
    Settings dialog with write-through fields.

    A local copy of the settings mirrors the widgets so the validity line
    updates without waiting for storage.
    """

    def __init__(
        self,
        event_bus: EventBus,
        settings_manager: SettingsManager,
        parent=None
    ):
        """
        Initialize the settings window.

        Args:
            event_bus: EventBus for communication
            settings_manager: SettingsManager receiving every edit
            parent: Parent widget
        """
        super().__init__(parent)

        self.event_bus = event_bus
        self.settings_manager = settings_manager

        self.draft = RewriteSettings()
        self._populating = False
        self._pending: Set[asyncio.Task] = set()

        self.api_key_field: Optional[QLineEdit] = None
        self.show_key_button: Optional[QPushButton] = None
        self.custom_model_checkbox: Optional[QCheckBox] = None
        self.custom_model_field: Optional[QLineEdit] = None
        self.custom_model_help: Optional[QLabel] = None
        self.model_dropdown: Optional[QComboBox] = None
        self.system_prompt_field: Optional[QPlainTextEdit] = None
        self.user_prompt_field: Optional[QPlainTextEdit] = None
        self.validity_label: Optional[QLabel] = None

        self.setup_ui()
        self.connect_signals()

        logger.info("SettingsWindow initialized")

    def setup_ui(self):
        """Setup the main UI layout and components."""
        self.setWindowTitle(f"{APP_NAME} Settings")
        self.resize(560, 680)
        self.setMinimumSize(480, 520)

        self.setWindowFlags(
            Qt.WindowType.Dialog |
            Qt.WindowType.WindowTitleHint |
            Qt.WindowType.WindowCloseButtonHint
        )

        main_layout = QVBoxLayout(self)
        main_layout.setSpacing(10)
        main_layout.setContentsMargins(15, 15, 15, 15)

        title_label = QLabel(f"{APP_NAME} Settings")
        title_label.setObjectName("title_label")
        title_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        main_layout.addWidget(title_label)

        content = QWidget()
        content_layout = QVBoxLayout(content)
        content_layout.addWidget(self.create_api_key_group())
        content_layout.addWidget(self.create_model_group())
        content_layout.addWidget(self.create_prompt_group())
        content_layout.addWidget(self.create_help_group())
        content_layout.addStretch()

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setWidget(content)
        main_layout.addWidget(scroll)

        self.validity_label = QLabel(INVALID_TEXT)
        self.validity_label.setObjectName("validity_label")
        main_layout.addWidget(self.validity_label)

        main_layout.addLayout(self.create_button_layout())

    def create_api_key_group(self) -> QGroupBox:
        group = QGroupBox("OpenRouter API Key")
        layout = QFormLayout(group)

        key_row = QHBoxLayout()
        self.api_key_field = QLineEdit()
        self.api_key_field.setObjectName("api_key_field")
        self.api_key_field.setPlaceholderText("Enter your OpenRouter API key")
        self.api_key_field.setEchoMode(QLineEdit.EchoMode.Password)
        key_row.addWidget(self.api_key_field)

        self.show_key_button = QPushButton("Show")
        self.show_key_button.setCheckable(True)
        key_row.addWidget(self.show_key_button)

        layout.addRow("API Key:", key_row)

        help_label = QLabel(API_KEY_HELP)
        help_label.setWordWrap(True)
        help_label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        layout.addRow(help_label)

        return group

    def create_model_group(self) -> QGroupBox:
        group = QGroupBox("Model Selection")
        layout = QFormLayout(group)

        self.custom_model_checkbox = QCheckBox("Use custom model")
        layout.addRow(self.custom_model_checkbox)

        self.custom_model_field = QLineEdit()
        self.custom_model_field.setObjectName("custom_model_field")
        self.custom_model_field.setPlaceholderText("e.g., openai/gpt-4o")
        layout.addRow("Custom Model:", self.custom_model_field)

        self.custom_model_help = QLabel(CUSTOM_MODEL_HELP)
        layout.addRow(self.custom_model_help)

        self.model_dropdown = QComboBox()
        self.model_dropdown.setObjectName("model_dropdown")
        self._populate_model_dropdown()
        layout.addRow("Select Model:", self.model_dropdown)

        return group

    def _populate_model_dropdown(self) -> None:
        """Fill the dropdown with Free and Premium sections."""
        dropdown = self.model_dropdown
        dropdown.clear()

        for header, models in (("Free Models", FREE_MODELS), ("Premium Models", PAID_MODELS)):
            dropdown.addItem(header)
            # Section headers are not selectable
            dropdown.model().item(dropdown.count() - 1).setEnabled(False)
            for model in models:
                dropdown.addItem(model, model)

    def create_prompt_group(self) -> QGroupBox:
        group = QGroupBox("Prompt Configuration")
        layout = QVBoxLayout(group)

        layout.addWidget(QLabel("System Prompt"))
        self.system_prompt_field = QPlainTextEdit()
        self.system_prompt_field.setPlaceholderText("Enter the system prompt for the AI assistant")
        self.system_prompt_field.setMinimumHeight(90)
        layout.addWidget(self.system_prompt_field)
        system_help = QLabel(SYSTEM_PROMPT_HELP)
        system_help.setWordWrap(True)
        layout.addWidget(system_help)

        layout.addWidget(QLabel("User Prompt Template"))
        self.user_prompt_field = QPlainTextEdit()
        self.user_prompt_field.setPlaceholderText("Please rewrite the following text: {text}")
        self.user_prompt_field.setMinimumHeight(60)
        layout.addWidget(self.user_prompt_field)
        user_help = QLabel(USER_PROMPT_HELP)
        user_help.setWordWrap(True)
        layout.addWidget(user_help)

        return group

    def create_help_group(self) -> QGroupBox:
        group = QGroupBox("How to Use")
        layout = QVBoxLayout(group)
        for step in HOW_TO_USE_STEPS:
            layout.addWidget(QLabel(step))
        return group

    def create_button_layout(self) -> QHBoxLayout:
        """Create the bottom button layout."""
        button_layout = QHBoxLayout()
        button_layout.addItem(QSpacerItem(40, 20, QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Minimum))

        reset_button = QPushButton("Reset to Defaults")
        reset_button.clicked.connect(self.reset_to_defaults)
        button_layout.addWidget(reset_button)

        close_button = QPushButton("Close")
        close_button.clicked.connect(self.accept)
        close_button.setDefault(True)
        button_layout.addWidget(close_button)

        return button_layout

    def connect_signals(self):
        """Connect widget edits to write-through handlers."""
        self.show_key_button.toggled.connect(self._toggle_key_visibility)
        self.api_key_field.textChanged.connect(self._on_api_key_changed)
        self.custom_model_checkbox.toggled.connect(self._on_use_custom_model_changed)
        self.custom_model_field.textChanged.connect(self._on_custom_model_changed)
        self.model_dropdown.currentIndexChanged.connect(self._on_model_selected)
        self.system_prompt_field.textChanged.connect(self._on_system_prompt_changed)
        self.user_prompt_field.textChanged.connect(self._on_user_prompt_changed)

    async def initialize(self) -> bool:
        """
        Load current settings into the form.

        Returns:
            True if initialization successful
        """
        try:
            settings = await self.settings_manager.load_settings()
            self.populate_form_fields(settings)
            logger.info("Settings window initialization complete")
            return True
        except Exception as e:
            logger.error("Settings window initialization failed: %s", e)
            return False

    def populate_form_fields(self, settings: RewriteSettings) -> None:
        """Populate form fields without writing anything back."""
        self._populating = True
        try:
            self.draft = dataclasses.replace(settings)

            self.api_key_field.setText(settings.api_key)
            self.custom_model_checkbox.setChecked(settings.use_custom_model)
            self.custom_model_field.setText(settings.custom_model)

            index = self.model_dropdown.findData(settings.selected_model)
            if index < 0:
                # Stored model no longer in the catalogue
                self.model_dropdown.addItem(settings.selected_model, settings.selected_model)
                index = self.model_dropdown.count() - 1
            self.model_dropdown.setCurrentIndex(index)

            self.system_prompt_field.setPlainText(settings.system_prompt)
            self.user_prompt_field.setPlainText(settings.user_prompt_template)
        finally:
            self._populating = False

        self._update_custom_model_visibility()
        self.update_validity()

    def _toggle_key_visibility(self, visible: bool) -> None:
        self.api_key_field.setEchoMode(
            QLineEdit.EchoMode.Normal if visible else QLineEdit.EchoMode.Password
        )
        self.show_key_button.setText("Hide" if visible else "Show")

    def _update_custom_model_visibility(self) -> None:
        use_custom = self.custom_model_checkbox.isChecked()
        self.custom_model_field.setEnabled(use_custom)
        self.custom_model_help.setVisible(use_custom)
        self.model_dropdown.setEnabled(not use_custom)

    def update_validity(self) -> bool:
        """Refresh the validity line from the current form values."""
        is_valid = self.draft.is_valid()
        self.validity_label.setText(VALID_TEXT if is_valid else INVALID_TEXT)
        self.validity_label.setProperty("error", not is_valid)
        style = self.validity_label.style()
        if style:
            style.polish(self.validity_label)
        return is_valid

    def _write_through(self, field_name: str, value, setter) -> None:
        """Mirror a field into the draft and schedule its persistence."""
        setattr(self.draft, field_name, value)
        self.update_validity()

        if self._populating:
            return

        task = asyncio.create_task(setter(value))
        self._pending.add(task)
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Failed to save setting: %s", error)
        elif task.result() is False:
            logger.error("Setting was not persisted")

    def _on_api_key_changed(self, text: str) -> None:
        self._write_through('api_key', text, self.settings_manager.set_api_key)

    def _on_use_custom_model_changed(self, checked: bool) -> None:
        self._update_custom_model_visibility()
        self._write_through('use_custom_model', checked, self.settings_manager.set_use_custom_model)

    def _on_custom_model_changed(self, text: str) -> None:
        self._write_through('custom_model', text, self.settings_manager.set_custom_model)

    def _on_model_selected(self, index: int) -> None:
        model = self.model_dropdown.itemData(index)
        if not model:
            return
        self._write_through('selected_model', model, self.settings_manager.set_selected_model)

    def _on_system_prompt_changed(self) -> None:
        self._write_through('system_prompt', self.system_prompt_field.toPlainText(),
                            self.settings_manager.set_system_prompt)

    def _on_user_prompt_changed(self) -> None:
        self._write_through('user_prompt_template', self.user_prompt_field.toPlainText(),
                            self.settings_manager.set_user_prompt_template)

    def reset_to_defaults(self):
        """Reset all settings to defaults after confirmation."""
        reply = QMessageBox.question(
            self,
            "Reset to Defaults",
            "This will reset all settings, including the API key, to their default values. Are you sure?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No
        )

        if reply == QMessageBox.StandardButton.Yes:
            task = asyncio.create_task(self._reset_to_defaults_async())
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _reset_to_defaults_async(self):
        try:
            await self.settings_manager.reset_to_defaults()
            self.populate_form_fields(self.settings_manager.settings)
            logger.info("Settings reset to defaults completed")
        except Exception as e:
            logger.error("Error resetting settings to defaults: %s", e)
            QMessageBox.critical(
                self,
                "Reset Error",
                f"Failed to reset settings to defaults:\n{e}"
            )

    async def flush_pending_writes(self) -> None:
        """Wait for scheduled setting writes to land."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def closeEvent(self, a0):
        """Handle window close event."""
        logger.info("Settings window closed (valid: %s)", self.draft.is_valid())
        if a0:
            a0.accept()
