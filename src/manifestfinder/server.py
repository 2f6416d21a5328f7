from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request

from .core.browser.playwright_adapter import PlaywrightAdapter
from .core.config import FinderConfig
from .core.log_util import LogFactory
from .finder import ManifestFinder


def build_finder(config: Optional[FinderConfig] = None) -> ManifestFinder:
    """按配置创建 Playwright 版本的 ManifestFinder"""
    config = config or FinderConfig.from_env(".env")
    LogFactory.configure(config.log)
    return ManifestFinder(PlaywrightAdapter(), config)


# === 生命周期 ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    if app.state.finder is None:
        app.state.finder = build_finder()

    config = app.state.finder.config
    app.state.finder.echo(f"Scraping server running at http://localhost:{config.port}")
    yield


def create_app(finder: Optional[ManifestFinder] = None) -> FastAPI:
    app = FastAPI(lifespan=lifespan)
    app.state.finder = finder

    @app.get("/scrape")
    async def scrape(request: Request):
        """抓取固定页面，返回第一个 m3u8 链接，失败时 link 为 null"""
        finder = request.app.state.finder
        link = await finder.find(finder.config.target_url)
        return {"link": link}

    return app


app = create_app()


def main():
    finder = build_finder()
    uvicorn.run(create_app(finder), host=finder.config.host, port=finder.config.port)


if __name__ == "__main__":
    main()
