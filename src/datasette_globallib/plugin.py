"""
Datasette plugin exposing the globallib pipeline as JSON routes.

One pipeline controller is kept per Datasette instance; it plays the
part of a single user's session:

- /-/globallib/state.json            current session snapshot
- /-/globallib/search.json?q=        search (cache first)
- /-/globallib/select.json?key=      select a book from the results
- /-/globallib/back.json             leave the detail view
- /-/globallib/shelf.json?index=     shelf guide for one holding
- /-/globallib/location.json?lat=&lon=   geolocation fix (omit to reset)

The cache database can be browsed like any other Datasette database.
"""

import logging
import weakref
from pathlib import Path

from datasette import Response, hookimpl
from datasette.utils.asgi import Request

from globallib import __version__
from globallib.config import PLUGIN_NAME, NavigatorConfig
from globallib.migrations import run_migrations
from globallib.pipeline import PipelineController

logger = logging.getLogger(__name__)

_controllers = weakref.WeakKeyDictionary()

# -----------------------------------------------------------------------------
# Plugin Configuration
# -----------------------------------------------------------------------------


def get_navigator_config(datasette) -> NavigatorConfig:
    """Build navigator config from datasette.yaml plugin settings."""
    plugin_config = datasette.plugin_config(PLUGIN_NAME) or {}
    config = NavigatorConfig.from_dict(plugin_config.get("navigator", {}))
    if "cache_db_path" in plugin_config:
        config.cache.db_path = Path(plugin_config["cache_db_path"])
    return config


def get_controller(datasette) -> PipelineController:
    """Get or create the pipeline controller for this Datasette instance."""
    controller = _controllers.get(datasette)
    if controller is None:
        controller = PipelineController(get_navigator_config(datasette))
        _controllers[datasette] = controller
    return controller


def state_response(controller: PipelineController, status: int = 200) -> Response:
    return Response.json(controller.snapshot(), status=status)


def error_response(message: str, status: int = 400) -> Response:
    return Response.json({"ok": False, "error": message}, status=status)


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


async def globallib_state(request: Request, datasette) -> Response:
    """Current session snapshot."""
    return state_response(get_controller(datasette))


async def globallib_search(request: Request, datasette) -> Response:
    """Run a search; an empty query leaves the session untouched."""
    query = request.args.get("q", "")
    if not query.strip():
        return error_response("Please enter a title, author, or ISBN.")

    controller = get_controller(datasette)
    await controller.search(query)
    return state_response(controller)


async def globallib_select(request: Request, datasette) -> Response:
    """Select a book from the current results and fetch its holdings."""
    key = request.args.get("key", "")
    controller = get_controller(datasette)
    book = controller.find_book(key)
    if book is None:
        return error_response(f"No book with key {key!r} in the current results.", 404)

    await controller.select_book(book)
    return state_response(controller)


async def globallib_back(request: Request, datasette) -> Response:
    """Return to the result list."""
    controller = get_controller(datasette)
    controller.back()
    return state_response(controller)


async def globallib_shelf(request: Request, datasette) -> Response:
    """Generate the shelf guide for one holding."""
    try:
        index = int(request.args.get("index", ""))
    except ValueError:
        return error_response("index must be an integer.")

    controller = get_controller(datasette)
    try:
        await controller.request_shelf_view(index)
    except IndexError:
        return error_response(f"No holding at index {index}.", 404)
    return state_response(controller)


async def globallib_location(request: Request, datasette) -> Response:
    """Record a geolocation fix, or fall back to the default location."""
    controller = get_controller(datasette)
    lat = request.args.get("lat")
    lon = request.args.get("lon")

    if lat is None and lon is None:
        controller.clear_location()
        return state_response(controller)

    try:
        controller.set_location(float(lat), float(lon))
    except (TypeError, ValueError):
        return error_response("lat and lon must both be numbers.")
    return state_response(controller)


# -----------------------------------------------------------------------------
# Datasette Hooks
# -----------------------------------------------------------------------------


@hookimpl
def register_routes():
    """Register plugin routes with Datasette."""
    return [
        (r"^/-/globallib/state\.json$", globallib_state),
        (r"^/-/globallib/search\.json$", globallib_search),
        (r"^/-/globallib/select\.json$", globallib_select),
        (r"^/-/globallib/back\.json$", globallib_back),
        (r"^/-/globallib/shelf\.json$", globallib_shelf),
        (r"^/-/globallib/location\.json$", globallib_location),
    ]


@hookimpl
def extra_template_vars(datasette):
    """Provide extra template variables."""
    return {
        "globallib_version": __version__,
    }


@hookimpl
def skip_csrf(datasette, scope):
    """JSON API routes are called directly, without a prior form page."""
    if scope.get("path", "").startswith("/-/globallib/"):
        return True
    return None


@hookimpl
def startup(datasette):
    """Create or migrate the cache database on Datasette startup."""
    config = get_navigator_config(datasette)
    run_migrations(config.cache.db_path, verbose=False)
    logger.info(f"globallib cache ready at {config.cache.db_path}")
