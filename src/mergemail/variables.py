"""Placeholder resolution against a per-message data context.

Placeholders use Jinja2 syntax (``{{Name}}``, ``{{Person.Email}}``) and may
pull in other files with ``{% include "footer.txt" %}``, looked up relative to
the message base directory. Resolution never fails on unknown names or
missing include files; both are reported back to the caller instead:

    resolver = PlaceholderResolver(base_dir="templates")
    resolved = resolver.resolve("Hello {{Name}}", MappingContext({"Name": "Ann"}))
    resolved.text           # "Hello Ann"
    resolved.missing_names  # ()
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from jinja2 import ChainableUndefined, Environment, FileSystemLoader, TemplateNotFound, Undefined
from jinja2.runtime import Context
from jinja2.utils import missing

logger = logging.getLogger(__name__)

# Private key under which the data context travels inside the Jinja2 context.
# It is not a valid identifier, so templates cannot reach it.
_DATA_CONTEXT_KEY = "mergemail:data-context"

ValueFormatter = Callable[[Any, str | None], str]


@dataclass(frozen=True, slots=True)
class Lookup:
    """Result of looking up a name in a data context.

    Attributes:
        present: Whether the data context knows the name.
        value: The value found, or None when absent.
    """

    present: bool
    value: Any = None


ABSENT = Lookup(present=False)


@runtime_checkable
class DataContext(Protocol):
    """Capability interface for data a message is merged against."""

    def lookup(self, name: str) -> Lookup:
        """Look up a top-level placeholder name."""
        ...

    def format(self, value: Any, culture: str | None) -> str:
        """Project a looked-up value to the text written into the message."""
        ...


def default_formatter(value: Any, culture: str | None) -> str:
    """Format a value without locale rules."""
    return str(value)


class MappingContext:
    """Data context backed by a mapping (dict, JSON object, row mapping)."""

    def __init__(self, data: Mapping[str, Any], formatter: ValueFormatter | None = None) -> None:
        self._data = data
        self._formatter = formatter or default_formatter

    def lookup(self, name: str) -> Lookup:
        if name in self._data:
            return Lookup(present=True, value=self._data[name])
        return ABSENT

    def format(self, value: Any, culture: str | None) -> str:
        return self._formatter(value, culture)


class ObjectContext:
    """Data context backed by attributes of an arbitrary object.

    Parameterless methods can be referenced by name without parentheses;
    they are called on lookup.
    """

    def __init__(self, obj: Any, formatter: ValueFormatter | None = None) -> None:
        self._obj = obj
        self._formatter = formatter or default_formatter

    def lookup(self, name: str) -> Lookup:
        if name.startswith("_"):
            return ABSENT
        try:
            value = getattr(self._obj, name)
        except AttributeError:
            return ABSENT
        if callable(value):
            try:
                value = value()
            except TypeError:
                # Needs arguments; hand the callable itself to the template.
                pass
        return Lookup(present=True, value=value)

    def format(self, value: Any, culture: str | None) -> str:
        return self._formatter(value, culture)


class EmptyContext:
    """Data context that knows no names."""

    def lookup(self, name: str) -> Lookup:
        return ABSENT

    def format(self, value: Any, culture: str | None) -> str:
        return default_formatter(value, culture)


def as_data_context(data: Any, formatter: ValueFormatter | None = None) -> DataContext:
    """Wrap arbitrary data in the matching data context adapter.

    Args:
        data: None, a mapping, an object, or an existing DataContext.
        formatter: Optional value formatter for the created adapter.

    Returns:
        A DataContext for the data.
    """
    if isinstance(data, DataContext):
        return data
    if data is None:
        return EmptyContext()
    if isinstance(data, Mapping):
        return MappingContext(data, formatter)
    return ObjectContext(data, formatter)


@dataclass(frozen=True, slots=True)
class RenderPolicy:
    """How None, empty and unresolved values are written into text.

    Attributes:
        show_null_as: Text for None values and unresolved names.
        show_empty_as: Text for empty string values.
    """

    show_null_as: str = ""
    show_empty_as: str = ""


# Addresses must never contain a placeholder marker.
EMPTY_RENDER_POLICY = RenderPolicy(show_null_as="", show_empty_as="")


@dataclass(frozen=True, slots=True)
class ResolvedText:
    """Result of resolving placeholders in one text fragment.

    Attributes:
        text: The resolved text.
        missing_names: Placeholder names the data context did not provide.
        missing_files: Referenced files that could not be read.
    """

    text: str
    missing_names: tuple[str, ...] = ()
    missing_files: tuple[str, ...] = ()


class _DataContextContext(Context):
    """Jinja2 context that falls back to the data context for unknown names."""

    def resolve_or_missing(self, key: str) -> Any:
        value = super().resolve_or_missing(key)
        if value is not missing or key == _DATA_CONTEXT_KEY:
            return value
        data = self.parent.get(_DATA_CONTEXT_KEY)
        if data is None:
            return missing
        found = data.lookup(key)
        return found.value if found.present else missing


class _RecordingLoader(FileSystemLoader):
    """File loader that records missing includes and renders them empty."""

    def __init__(self, searchpath: str | Path, resolver: "PlaceholderResolver") -> None:
        super().__init__(searchpath)
        self._resolver = resolver

    def get_source(self, environment: Environment, template: str) -> tuple[str, str | None, Callable[[], bool]]:
        try:
            return super().get_source(environment, template)
        except TemplateNotFound:
            self._resolver._record_missing_file(template)
            return "", None, lambda: False


class PlaceholderResolver:
    """Resolves placeholders in message text fields.

    One resolver is created per assembly; missing names and files are
    collected per resolve() call and returned with the text.
    """

    def __init__(
        self,
        base_dir: str | Path = ".",
        culture: str | None = None,
        *,
        autoescape: bool = False,
    ) -> None:
        """Initialize the resolver.

        Args:
            base_dir: Directory that include references are resolved against.
            culture: Locale name passed to the data context formatter.
            autoescape: If True, HTML-escape values written into the text.
        """
        self._base_dir = Path(base_dir)
        self._culture = culture
        self._policy = RenderPolicy()
        self._data: DataContext = EmptyContext()
        self._missing_names: list[str] = []
        self._missing_files: list[str] = []

        self._environment = Environment(
            loader=_RecordingLoader(self._base_dir, self),
            undefined=ChainableUndefined,
            finalize=self._finalize,
            autoescape=autoescape,
            keep_trailing_newline=True,
            cache_size=0,
        )
        self._environment.context_class = _DataContextContext
        # Template names come only from the data context, never from Jinja2 builtins.
        self._environment.globals.clear()

    @property
    def culture(self) -> str | None:
        """Locale name used for formatting values."""
        return self._culture

    def resolve(
        self,
        text: str,
        data: DataContext | None = None,
        policy: RenderPolicy | None = None,
    ) -> ResolvedText:
        """Resolve all placeholders in a text fragment.

        Args:
            text: Text that may contain placeholders.
            data: Data context to look names up in.
            policy: How None, empty and unresolved values are rendered.

        Returns:
            ResolvedText with the text and the names/files that could not be
            resolved.

        Raises:
            jinja2.TemplateSyntaxError: If the text is not a valid template.
        """
        if not text:
            return ResolvedText(text="")

        self._data = data if data is not None else EmptyContext()
        self._policy = policy or RenderPolicy()
        self._missing_names = []
        self._missing_files = []

        template = self._environment.from_string(text)
        rendered = template.render({_DATA_CONTEXT_KEY: self._data})

        if self._missing_names:
            logger.debug("Unresolved placeholders: %s", ", ".join(self._missing_names))

        return ResolvedText(
            text=rendered,
            missing_names=tuple(dict.fromkeys(self._missing_names)),
            missing_files=tuple(dict.fromkeys(self._missing_files)),
        )

    def _finalize(self, value: Any) -> Any:
        if isinstance(value, Undefined):
            name = value._undefined_name
            if name is not None:
                self._missing_names.append(name)
            return self._policy.show_null_as
        if value is None:
            return self._policy.show_null_as
        if isinstance(value, str):
            return value if value else self._policy.show_empty_as
        return self._data.format(value, self._culture)

    def _record_missing_file(self, name: str) -> None:
        self._missing_files.append(str(self._base_dir / name))
