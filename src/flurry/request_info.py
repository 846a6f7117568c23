"""Request metadata exposed to templates under the ``_r`` model key."""

from typing import Any

from flurry.context import RequestContext


def build_request_model(rc: RequestContext) -> dict[str, Any]:
    """Collect request metadata for template rendering.

    Keys: ``rc``, ``path``, ``paths``, ``method``, ``url``, ``query``,
    ``params``, ``headers``. Without an HTTP request (unit use) the
    request-derived values are empty.
    """
    request = rc.request
    info: dict[str, Any] = {
        "rc": rc,
        "path": rc.resource_path,
        "paths": list(rc.resource_paths),
        "params": rc.params.to_dict(),
    }
    if request is None:
        info.update(method=None, url=rc.resource_path, query={}, headers={})
    else:
        info.update(
            method=request.method,
            url=request.url,
            query=request.query.to_dict(),
            headers=dict(request.headers),
        )
    return info
