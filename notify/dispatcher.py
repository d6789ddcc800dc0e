"""
notify/dispatcher.py -- Render and hand off link token emails.

send(kind, recipients, link):
  1. Empty recipients -> EmptyRecipients, transport never called.
  2. Look up the kind's subject and template (core.actions.ACTION_PROFILES).
  3. Render the template with Jinja2. Every body template extends shell.html
     and fills its "body" block; autoescape HTML-escapes the link.
  4. transport.send(); False -> DeliveryFailed (reported, not raised).

Templates are loaded once, at construction. A missing template, or one that
never uses `link`, raises TemplateMissingError there.
"""

from __future__ import annotations

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, Template, TemplateError, meta, select_autoescape

from core.actions import ACTION_PROFILES, ActionKind
from core.results import DeliveryFailed, EmptyRecipients, Ok, Result
from notify.transport import MailTransport

logger = logging.getLogger("mobihub.notify")

TEMPLATE_DIR = Path(__file__).parent / "templates"
SHELL_TEMPLATE = "shell.html"
BODY_BLOCK = "body"
LINK_VARIABLE = "link"


class TemplateMissingError(RuntimeError):
    """An email template could not be loaded at startup."""


class NotificationDispatcher:
    """Maps action kinds to rendered emails and delivers them via a transport.

    The transport is injected so tests can pass a recording stub and
    production can pass HttpMailTransport.
    """

    def __init__(self, transport: MailTransport, template_dir: Path = TEMPLATE_DIR) -> None:
        self._transport = transport
        self._env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
        )
        shell = self._load(SHELL_TEMPLATE)
        if BODY_BLOCK not in shell.blocks:
            raise TemplateMissingError(f"{SHELL_TEMPLATE} has no {{% block {BODY_BLOCK} %}}")
        self._templates: dict[ActionKind, Template] = {}
        for kind, profile in ACTION_PROFILES.items():
            template = self._load(profile.template)
            source, _, _ = self._env.loader.get_source(self._env, profile.template)
            if LINK_VARIABLE not in meta.find_undeclared_variables(self._env.parse(source)):
                raise TemplateMissingError(f"{profile.template} never renders {{{{ {LINK_VARIABLE} }}}}")
            self._templates[kind] = template

    def _load(self, name: str) -> Template:
        try:
            return self._env.get_template(name)
        except TemplateError as e:
            raise TemplateMissingError(f"email template {name} could not be loaded: {e}") from e

    def render(self, kind: ActionKind, link: str) -> tuple[str, str]:
        """Return (subject, html) for kind with link substituted."""
        return ACTION_PROFILES[kind].subject, self._templates[kind].render(link=link)

    def send(self, kind: ActionKind, recipients: list[str], link: str) -> Result[None]:
        if not recipients:
            return EmptyRecipients()

        subject, content = self.render(kind, link)
        if not self._transport.send(list(recipients), subject, content):
            logger.error("%s email to %d recipient(s) was not delivered", kind.value, len(recipients))
            return DeliveryFailed(reason="transport reported failure")

        logger.info("%s email handed to transport (%d recipient(s))", kind.value, len(recipients))
        return Ok()
