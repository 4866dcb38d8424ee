import asyncio

from aiohttp import web
from aiohttp import test_utils

from imgpreload.workflows.image_preloader import ImagePreloader, PreloadConfig

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _make_app(seen):
    async def image(request):
        seen.append((request.path, request.headers.get("Authorization")))
        return web.Response(body=PNG_BYTES, content_type="image/png")

    async def missing(request):
        seen.append((request.path, request.headers.get("Authorization")))
        return web.Response(status=404)

    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(body=PNG_BYTES, content_type="image/png")

    app = web.Application()
    app.router.add_get("/img/hero.png", image)
    app.router.add_get("/img/missing.png", missing)
    app.router.add_get("/img/slow.png", slow)
    return app


def test_real_fetches_against_local_server():
    seen = []

    async def scenario():
        server = test_utils.TestServer(_make_app(seen))
        await server.start_server()
        try:
            page_url = str(server.make_url("/"))
            foreign = f"http://localhost:{server.port}/img/hero.png"
            config = PreloadConfig(
                start_delay=0.0,
                timeout=0.3,
                page_url=page_url,
                credential_headers={"Authorization": "Bearer page-token"},
            )
            async with ImagePreloader(config) as preloader:
                summary = await preloader.preload_images(
                    ["/img/hero.png", "/img/missing.png", "/img/slow.png", foreign],
                    4,
                )
            return summary
        finally:
            await server.close()

    summary = asyncio.run(scenario())

    assert [o.reason for o in summary.outcomes] == [None, "network-error", "timeout", None]
    assert summary.successful == 2
    assert summary.failed == 2
    # The credential header only goes to the page's own origin.
    assert ("/img/hero.png", "Bearer page-token") in seen
    assert ("/img/hero.png", None) in seen
    assert ("/img/missing.png", "Bearer page-token") in seen
