"""In-page panel for switching features on and off.

Meta+Shift+A opens a small panel, hosted in its own shadow root, with one
checkbox per registered feature.  Saving applies the new enabled states to
this page only: the runtime is told to ignore the next remote settings sync.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lxml import html as lxml_html

from talfred.api import Feature
from talfred.dom.walker import attach_shadow, query_selector_all

if TYPE_CHECKING:
    from lxml.html import HtmlElement

    from talfred.dom.page import Event, KeyEvent

logger = logging.getLogger(__name__)

PANEL_ID = "talfred-feature-toggles"
SHORTCUT_CODE = "KeyA"

PANEL_STYLE = """
:host {
  position: fixed;
  bottom: 20px;
  right: 20px;
  width: 400px;
  max-height: 400px;
  overflow-y: scroll;
  background: white;
  z-index: 1000;
  padding: 10px;
}
p { padding: 5px; margin: 0; color: #dc8e00; font-weight: 500; }
p span { color: blue; cursor: pointer; }
li { list-style: none; padding: 5px; }
button { width: 80px; height: 30px; }
"""

NOTICE_TEXT = "Settings updated here are only temporary."


class FeatureToggles(Feature):
    name = "Feature Toggles"
    description = "Toggle features on/off on every page"
    default_enabled = False

    async def should_run(self) -> bool:
        return True

    async def run(self) -> None:
        self.page.add_event_listener("keydown", self._on_keydown)
        self.on_teardown(self._teardown)

    def _teardown(self) -> None:
        self.page.remove_event_listener("keydown", self._on_keydown)
        panel = self.panel
        if panel is not None:
            for button in self._buttons(panel):
                self.page.remove_event_listener("click", self._on_click, button)
            panel.drop_tree()

    def _on_keydown(self, event: KeyEvent) -> None:
        if event.meta_key and event.shift_key and event.code == SHORTCUT_CODE:
            self.show_panel()

    # -- panel -------------------------------------------------------------

    @property
    def panel(self) -> HtmlElement | None:
        return self.page.get_element_by_id(PANEL_ID)

    @property
    def visible(self) -> bool:
        panel = self.panel
        return panel is not None and panel.get("style") != "display: none;"

    def show_panel(self) -> HtmlElement:
        """Show the panel, building it on first use."""
        panel = self.panel
        if panel is not None:
            panel.set("style", "display: block;")
            return panel

        container = lxml_html.Element("div", id=PANEL_ID)
        shadow = attach_shadow(container)

        style = lxml_html.Element("style")
        style.text = PANEL_STYLE
        shadow.append(style)

        notice = lxml_html.Element("p")
        notice.text = NOTICE_TEXT
        close = lxml_html.Element("span", {"class": "close"})
        close.text = "close"
        notice.append(close)
        shadow.append(notice)

        for feature in self.runtime.features:
            shadow.append(self._feature_item(feature))

        save = lxml_html.Element("button", {"class": "save"})
        save.text = "Save"
        shadow.append(save)

        self.page.body.append(container)
        for button in (close, save):
            self.page.add_event_listener("click", self._on_click, button)
        logger.debug("Feature toggle panel shown")
        return container

    @staticmethod
    def _feature_item(feature: Feature) -> HtmlElement:
        item = lxml_html.Element("li")
        checkbox = lxml_html.Element("input", type="checkbox", id=feature.name)
        if feature.enabled:
            checkbox.set("checked", "checked")
        label = lxml_html.Element("label", {"for": feature.name})
        label.text = feature.description
        item.extend([checkbox, label])
        return item

    @staticmethod
    def _buttons(panel: HtmlElement) -> list[HtmlElement]:
        return query_selector_all("span.close, button.save", panel)

    async def _on_click(self, event: Event) -> None:
        if event.target is None:
            return
        if event.target.tag == "button":
            await self.save_panel()
        else:
            self.close_panel()

    def close_panel(self) -> None:
        panel = self.panel
        if panel is not None:
            panel.set("style", "display: none;")

    async def save_panel(self) -> None:
        """Apply the checkbox states to this page only."""
        panel = self.panel
        if panel is None:
            return
        settings = {
            checkbox.get("id"): {"enabled": checkbox.get("checked") is not None}
            for checkbox in query_selector_all("input[type=checkbox]", panel)
        }
        # Ignore the next remote sync so it does not undo the local change.
        self.runtime.skip_sync = True
        await self.runtime.reconcile(settings)
