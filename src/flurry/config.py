"""Application configuration.

Read once when the app freezes (templates, JSON output) and per request by
the ASGI handler (JSON suffix, action parameter, debug error pages).
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, template_dir="views", json_indent=2)
    """

    debug: bool = False

    # Templates
    template_dir: str | Path = "templates"
    template_ext: str = ".html"  # Appended to the resolved template path
    autoescape: bool = True
    trim_blocks: bool = True
    lstrip_blocks: bool = True

    # Dispatch
    json_suffix: str = ".json"  # Resource paths ending in this render JSON
    action_param: str = "action"  # Request parameter naming the web action

    # JSON output
    json_indent: int | None = None
    json_sort_keys: bool = False
