"""Terminal prompts (prompt_toolkit-based) used by the CLI.

Kept separate from the engine so they can be driven in tests with a pipe
input and ``DummyOutput``.
"""

from __future__ import annotations

from collections.abc import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.validation import ValidationError, Validator

from .categories import validate_name as _validate_name

SKIP_SENTINEL = "(skip)"


def resolve_choice(text: str, options: Sequence[str]) -> str | None:
    """Map typed text to one option: exact (case-insensitive) or unique prefix."""

    lower = text.strip().lower()
    if not lower:
        return None
    for o in options:
        if o.lower() == lower:
            return o
    prefixed = [o for o in options if o.lower().startswith(lower)]
    return prefixed[0] if len(prefixed) == 1 else None


def _session_like(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def select_conflict_category(
    candidates: Sequence[str],
    *,
    default: str | None = None,
    allow_skip: bool = True,
    message: str = "Category (Enter to accept • Esc to stop): ",
    session: PromptSession | None = None,
) -> str | None:
    """Ask which of the candidate categories a conflicting transaction belongs to.

    The buffer is pre-filled with ``default`` (first candidate when omitted).
    A unique prefix is enough. Returns the chosen candidate name, or ``None``
    when the user picks ``(skip)`` or presses Esc.
    """

    options = [*candidates, SKIP_SENTINEL] if allow_skip else list(candidates)
    if not options:
        return None

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised interactively
        event.app.exit(result=None)

    class _ChoiceValidator(Validator):
        def validate(self, document) -> None:
            if resolve_choice(document.text, options) is None:
                raise ValidationError(message="Pick one of: " + ", ".join(options))

    sess = _session_like(session, kb)
    value = sess.prompt(
        message,
        default=default if default is not None else options[0],
        completer=WordCompleter(options, ignore_case=True, match_middle=True, sentence=True),
        validator=_ChoiceValidator(),
        validate_while_typing=False,
        key_bindings=kb,
    )
    if value is None:
        return None
    choice = resolve_choice(value, options)
    return None if choice == SKIP_SENTINEL else choice


def prompt_category_name(
    *,
    initial: str = "",
    message: str = "Category name (Enter to save • Esc to cancel): ",
    session: PromptSession | None = None,
) -> str | None:
    """Collect a new category name with inline validation; ``None`` on Esc."""

    kb = KeyBindings()

    @kb.add("escape")
    def _(event) -> None:  # pragma: no cover - exercised interactively
        event.app.exit(result=None)

    class _NameValidator(Validator):
        def validate(self, document) -> None:
            v = _validate_name(document.text)
            if not v.ok:
                raise ValidationError(message=v.reason or "Invalid name")

    sess = _session_like(session, kb)
    return sess.prompt(
        message,
        default=initial,
        validator=_NameValidator(),
        validate_while_typing=False,
        key_bindings=kb,
    )


__all__ = [
    "SKIP_SENTINEL",
    "prompt_category_name",
    "resolve_choice",
    "select_conflict_category",
]
