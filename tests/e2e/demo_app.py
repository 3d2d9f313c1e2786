"""
Minimal application for exercising the harness in a real browser.

Each page boots a tiny client runtime: it publishes the navigation globals the
``app`` fixture calls, logs the dev-server message and dispatches the start
event shortly after load. ``/no-start`` never dispatches it.
"""

from typing import Dict, Final

from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response

BOOT_DELAY_MS: Final[int] = 100

RUNTIME: Final[str] = """
<script>
  window.__invalidated = [];
  window.__guards = [];
  window.goto = async (url, opts = {}) => {
    const target = new URL(url, location.href);
    if (window.__guards.some((guard) => guard(target) === false)) return;
    history[opts.replaceState ? 'replaceState' : 'pushState']({}, '', target);
    document.querySelector('h1').textContent = 'Client ' + target.pathname;
  };
  window.invalidate = async (url) => { window.__invalidated.push(url); };
  window.beforeNavigate = (guard) => { window.__guards.push(guard); };
  window.afterNavigate = (callback) => {};
  window.prefetch = async (url) => { await fetch(url); };
  window.prefetchRoutes = async (urls) => {};
  console.log('[vite] connected.');
  setTimeout(() => dispatchEvent(new CustomEvent('sveltekit:start')), BOOT_DELAY);
</script>
""".replace("BOOT_DELAY", str(BOOT_DELAY_MS))

PAGES: Final[Dict[str, str]] = {
    "/": """
        <h1>Home</h1>
        <div id="top">top of page</div>
        <a href="/about">About</a>
        <div id="below-fold" style="margin-top: 3000px">far below</div>
    """,
    "/about": """
        <h1>About</h1>
        <a href="/">Home</a>
    """,
}


def render(body: str, boot: bool = True) -> str:
    return (
        "<!doctype html><html><head><title>kit demo</title></head><body>"
        f"{body}{RUNTIME if boot else ''}</body></html>"
    )


async def handle(request: Request) -> Response:
    path = request.url.path
    if path in PAGES:
        return HTMLResponse(render(PAGES[path]))
    if path == "/no-start":
        return HTMLResponse(render("<h1>Never starts</h1>", boot=False))
    if path == "/data.json":
        return JSONResponse({"ok": True})
    return PlainTextResponse("Not found", status_code=404)
