"""Site action definitions.

An action file maps action names to what the engine should do on a page.
Each action is resolved once, when the file is loaded, into one of the
variants below; the traversal engine dispatches on ``mode`` and never probes
for capabilities at runtime.

Browser variants:
    ExtractOnlyAction  extract data from the current page, nothing more
    VisitAction        descend into one branch via a ``visit`` callback
    VisitAllAction     click every link of a listing and descend into each

Mirror mode uses a single ``MirrorAction`` over local HTML files.
"""

import enum
from dataclasses import dataclass, field, fields
from typing import Any, Callable, ClassVar, Mapping

from playscrape.exceptions import ActionConfigError

ROOT_ACTION = "start"
MIRROR_ACTION = "mirror"


class TraversalMode(str, enum.Enum):
    EXTRACT = "extract"
    VISIT = "visit"
    VISIT_ALL = "visit_all"


@dataclass
class ExtractAction:
    """Capabilities shared by every action that can produce records."""

    extract: Callable[..., Any] | None = None
    download_images: Callable[..., Any] | None = None
    get_url_from_file_name: Callable[[str], str] | None = None


@dataclass
class BrowserAction(ExtractAction):
    mode: ClassVar[TraversalMode]

    init: str | Callable[..., Any] | None = None
    next: Callable[..., Any] | None = None
    undo_visit: Callable[..., Any] | None = None
    test_urls: list[str] = field(default_factory=list)


@dataclass
class ExtractOnlyAction(BrowserAction):
    mode: ClassVar[TraversalMode] = TraversalMode.EXTRACT


@dataclass
class VisitAction(BrowserAction):
    mode: ClassVar[TraversalMode] = TraversalMode.VISIT

    visit: Callable[..., Any] | None = None


@dataclass
class VisitAllAction(BrowserAction):
    mode: ClassVar[TraversalMode] = TraversalMode.VISIT_ALL

    visit_all: Callable[..., Any] | None = None
    should_revisit: Callable[..., Any] | None = None


@dataclass
class MirrorAction(ExtractAction):
    html_files: list[str] = field(default_factory=list)
    test_files: list[str] = field(default_factory=list)


_BROWSER_KEYS = {f.name for f in fields(VisitAction)} | {f.name for f in fields(VisitAllAction)}
_MIRROR_KEYS = {f.name for f in fields(MirrorAction)}


def _as_list(value: str | list[str] | tuple[str, ...] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def parse_browser_action(name: str, definition: Mapping[str, Any] | BrowserAction) -> BrowserAction:
    """Resolve one raw action definition into its traversal variant."""
    if isinstance(definition, BrowserAction):
        _validate_browser_action(name, definition)
        return definition

    if not isinstance(definition, Mapping):
        raise ActionConfigError(f"Action '{name}' must be a mapping, got {type(definition).__name__}")

    unknown = set(definition) - _BROWSER_KEYS
    if unknown:
        raise ActionConfigError(f"Action '{name}' has unknown keys: {', '.join(sorted(unknown))}")

    has_visit = definition.get("visit") is not None
    has_visit_all = definition.get("visit_all") is not None

    if has_visit and has_visit_all:
        raise ActionConfigError(f"Action '{name}' defines both visit and visit_all, only use one.")

    common = {
        "extract": definition.get("extract"),
        "download_images": definition.get("download_images"),
        "get_url_from_file_name": definition.get("get_url_from_file_name"),
        "init": definition.get("init"),
        "next": definition.get("next"),
        "undo_visit": definition.get("undo_visit"),
        "test_urls": _as_list(definition.get("test_urls")),
    }

    if definition.get("should_revisit") is not None and not has_visit_all:
        raise ActionConfigError(f"Action '{name}' defines should_revisit without visit_all.")

    if has_visit:
        action: BrowserAction = VisitAction(visit=definition["visit"], **common)
    elif has_visit_all:
        action = VisitAllAction(
            visit_all=definition["visit_all"],
            should_revisit=definition.get("should_revisit"),
            **common,
        )
    else:
        action = ExtractOnlyAction(**common)

    _validate_browser_action(name, action)
    return action


def _validate_browser_action(name: str, action: BrowserAction) -> None:
    if action.mode is TraversalMode.EXTRACT and action.extract is None:
        raise ActionConfigError(f"Action '{name}' needs at least one of extract, visit or visit_all.")
    if action.mode is TraversalMode.VISIT and action.visit is None:
        raise ActionConfigError(f"Action '{name}' is a visit action without a visit callback.")
    if action.mode is TraversalMode.VISIT_ALL and action.visit_all is None:
        raise ActionConfigError(f"Action '{name}' is a visit_all action without a visit_all callback.")
    if action.init is not None and not (isinstance(action.init, str) or callable(action.init)):
        raise ActionConfigError(f"Action '{name}' init must be a URL or a callable.")


def parse_browser_actions(actions: Mapping[str, Any]) -> dict[str, BrowserAction]:
    """Resolve a browser action set. ``start`` is required."""
    if not isinstance(actions, Mapping) or not actions:
        raise ActionConfigError("No actions found. Make sure you export a browser or mirror object.")
    if ROOT_ACTION not in actions:
        raise ActionConfigError(f"Browser actions must define a '{ROOT_ACTION}' action.")

    return {name: parse_browser_action(name, definition) for name, definition in actions.items()}


def parse_mirror_action(definition: Mapping[str, Any] | MirrorAction) -> MirrorAction:
    """Resolve the single action used for mirrored HTML files."""
    if isinstance(definition, MirrorAction):
        action = definition
    elif isinstance(definition, Mapping):
        unknown = set(definition) - _MIRROR_KEYS
        if unknown:
            raise ActionConfigError(f"Mirror action has unknown keys: {', '.join(sorted(unknown))}")
        action = MirrorAction(
            extract=definition.get("extract"),
            download_images=definition.get("download_images"),
            get_url_from_file_name=definition.get("get_url_from_file_name"),
            html_files=_as_list(definition.get("html_files")),
            test_files=_as_list(definition.get("test_files")),
        )
    else:
        raise ActionConfigError(f"Mirror action must be a mapping, got {type(definition).__name__}")

    if action.extract is None:
        raise ActionConfigError("Mirror action must define extract.")
    return action
